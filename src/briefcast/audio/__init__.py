"""Narration audio: chunked TTS, ffmpeg mixing and publishing."""
