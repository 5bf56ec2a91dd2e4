"""Audio and presentation backends."""

from .base import AudioBackend, AudioHandle, PresentationBackend, ResourceHandle
from .headless import HeadlessAudioBackend, HeadlessLease, HeadlessPresentationBackend

__all__ = [
    "AudioBackend",
    "AudioHandle",
    "HeadlessAudioBackend",
    "HeadlessLease",
    "HeadlessPresentationBackend",
    "PresentationBackend",
    "ResourceHandle",
]
