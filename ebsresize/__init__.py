"""Grow EBS volumes, partitions and filesystems of the running instance."""
