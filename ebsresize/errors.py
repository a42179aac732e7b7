"""Exceptions raised while resizing volumes, partitions and filesystems."""


class ResizeError(Exception):
    pass


class ConfigError(ResizeError):
    pass


class MappingError(ResizeError):
    """No EBS volume could be found for a local device."""


class AmbiguousMappingError(MappingError):
    """More than one EBS volume matches the attachment slot of a device."""

    def __init__(self, device, volume_ids):
        self.device = device
        self.volume_ids = volume_ids
        super().__init__(
            f"{len(volume_ids)} volumes match {device}: "
            + ", ".join(volume_ids)
        )


class DeviceNameError(MappingError):
    """Device path does not follow a known EBS naming convention."""


class ProbeError(ResizeError):
    pass


class ProviderTransientError(ResizeError):
    """The volume cannot be modified right now, try again on a later run."""

    def __init__(self, volume_id, code, message=""):
        self.volume_id = volume_id
        self.code = code
        super().__init__(f"{volume_id}: {code} {message}".strip())


class ProviderFatalError(ResizeError):
    pass


class VolumeModificationTimeout(ProviderFatalError, TimeoutError):
    pass


class ResizeCancelled(ResizeError):
    pass


class LocalToolError(ResizeError):
    def __init__(self, cmd, returncode, stdout=None, stderr=None):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        lines = [f"{' '.join(cmd)} failed with exit code {returncode}"]
        if stdout:
            lines.append("Stdout:")
            lines.append(stdout)
        if stderr:
            lines.append("Stderr:")
            lines.append(stderr)
        self.msg = "\n".join(lines)
        super().__init__(self.msg)
