"""Artifact readiness detection."""

from .artifact_detector import ArtifactDetector
from .profiles import ArtifactProfile, image_profile, video_profile

__all__ = ["ArtifactDetector", "ArtifactProfile", "image_profile", "video_profile"]
