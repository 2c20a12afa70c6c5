"""Best-effort image and speech generation, PCM decoding and audio sinks."""
import base64
import io
import wave
from typing import Optional, Protocol

import numpy as np

from log import get_logger

logger = get_logger("trilingua.media")

from llm import IMAGE_MODEL, TTS_MODEL, GenAIClient, response_inline_data, strip_markup

# Prebuilt backend voices per display language
VOICES = {
    "jp": "Kore",
    "en": "Fenrir",
    "zh": "Puck",
}

SAMPLE_RATE = 24000  # backend TTS output: s16le, mono


def voice_for(lang: str) -> str:
    return VOICES[lang]


def decode_pcm16(data: str) -> np.ndarray:
    """Decode base64 signed 16-bit little-endian PCM into float32 samples in [-1.0, 1.0]."""
    raw = base64.b64decode(data)
    if len(raw) % 2:
        raw = raw[:-1]
    return np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0


def image_prompt(concept: str) -> str:
    return (
        f'A clear, high-quality, photorealistic or artistic illustration representing the concept of: "{concept}". '
        "The image should be wide and suitable for a header."
    )


class AudioSink(Protocol):
    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        ...


class SoundDeviceSink:
    """Plays through the local output device."""

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        import sounddevice as sd
        sd.play(samples, sample_rate, blocking=False)


class BufferSink:
    """Keeps the last buffer so it can be shipped to a browser as WAV."""

    def __init__(self):
        self.samples: Optional[np.ndarray] = None
        self.sample_rate = SAMPLE_RATE

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        self.samples = samples
        self.sample_rate = sample_rate

    @property
    def has_audio(self) -> bool:
        return self.samples is not None and len(self.samples) > 0

    def to_wav(self) -> bytes:
        pcm = np.clip(np.round(self.samples * 32768.0), -32768, 32767).astype("<i2")
        buf = io.BytesIO()
        with wave.open(buf, "wb") as w:
            w.setnchannels(1)
            w.setsampwidth(2)
            w.setframerate(self.sample_rate)
            w.writeframes(pcm.tobytes())
        return buf.getvalue()


class MediaClient:
    """Image and speech requests. Neither operation ever raises to the caller."""

    def __init__(self, client: GenAIClient, sink: Optional[AudioSink] = None,
                 image_model: str = IMAGE_MODEL, tts_model: str = TTS_MODEL):
        self.client = client
        self.sink = sink
        self.image_model = image_model
        self.tts_model = tts_model

    async def generate_image(self, concept: str) -> Optional[str]:
        """Return a data URI for an illustration of `concept`, or None."""
        if not concept or not concept.strip():
            return None
        try:
            payload = await self.client.generate_content(
                self.image_model,
                [{"text": image_prompt(concept)}],
                {"responseModalities": ["TEXT", "IMAGE"]},
            )
            data = response_inline_data(payload)
            if data is None:
                logger.info("Image response carried no inline data", extra={"component": "media"})
                return None
            mime = data.get("mimeType")
            if not isinstance(mime, str) or not mime:
                mime = "image/png"
            return f"data:{mime};base64,{data['data']}"
        except Exception:
            logger.exception("Image generation failed", extra={"component": "media", "model": self.image_model})
            return None

    async def generate_speech(self, text: str, lang: str, sink: Optional[AudioSink] = None) -> None:
        clean = strip_markup(text).strip()
        if not clean:
            return
        try:
            payload = await self.client.generate_content(
                self.tts_model,
                [{"text": clean}],
                {
                    "responseModalities": ["AUDIO"],
                    "speechConfig": {
                        "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_for(lang)}},
                    },
                },
            )
            data = response_inline_data(payload)
            if data is None:
                logger.warning("Speech response carried no audio", extra={"component": "media", "lang": lang})
                return
            samples = decode_pcm16(data["data"])
            (sink or self.sink or SoundDeviceSink()).play(samples, SAMPLE_RATE)
        except Exception:
            logger.exception("Speech generation failed", extra={"component": "media", "lang": lang})
