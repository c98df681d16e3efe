"""Image provisioning module.

This module handles:
- Driving the docker CLI (inspect, history, build, save/load)
- Resolving a target to a usable image from the local store or cache
- Checking base image availability and building target images
"""

from cross_imagegen.images.base import BaseImageChecker, parse_image_reference
from cross_imagegen.images.builder import ImageBuilder, compose_build_args
from cross_imagegen.images.docker import DockerClient
from cross_imagegen.images.models import BuildResult, ResolveResult
from cross_imagegen.images.resolver import ImageResolver

__all__ = [
    "BaseImageChecker",
    "BuildResult",
    "DockerClient",
    "ImageBuilder",
    "ImageResolver",
    "ResolveResult",
    "compose_build_args",
    "parse_image_reference",
]
