"""Database models"""
from courtside.models.camera import Base, Camera, CameraStatus
from courtside.models.recording import Recording, RecordingChunk, RecordingStatus, ChunkStatus
from courtside.models.settings import Setting

__all__ = [
    "Base",
    "Camera",
    "CameraStatus",
    "Recording",
    "RecordingChunk",
    "RecordingStatus",
    "ChunkStatus",
    "Setting",
]
