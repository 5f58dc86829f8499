"""Per-call relay between Twilio Media Streams and ElevenLabs conversations.

Each accepted media-stream socket gets its own SessionRelay; nothing here is
shared between calls.
"""
