from hlsaudio.session.session import HLSAudioSession


__all__ = ["HLSAudioSession"]
