"""Client for consuming streamed sleep advice."""

from sleep_advice_server.client.consumer import AdviceStreamConsumer, AdviceView, SSEDecoder

__all__ = ["AdviceStreamConsumer", "AdviceView", "SSEDecoder"]
