"""
Simple voice-agent client for the realtime agent proxy.

Connects to a running proxy, sends Settings, types one user message and
prints the agent's reply. Audio the agent speaks can be saved as a WAV file.

Usage:
    python simple_client.py [--url URL] [--text TEXT] [--audio-out FILE]
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
import wave
from typing import List, Optional

import websockets

from agent_proxy.config.constants import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE, AUDIO_SAMPLE_WIDTH

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("agent_proxy_client")

DEFAULT_URL = "ws://localhost:8080/openai"
REPLY_TIMEOUT = 30  # seconds


def build_settings(prompt: str) -> dict:
    return {
        "type": "Settings",
        "audio": {"input": {"encoding": "linear16", "sample_rate": AUDIO_SAMPLE_RATE}},
        "agent": {
            "think": {"prompt": prompt},
            "greeting": "Hello! How can I help you today?",
        },
    }


async def run_simple_client(url: str, text: str, audio_out: Optional[str] = None) -> None:
    """
    A simple client that:
    1. Connects to the proxy with a fresh trace id
    2. Sends Settings and waits for SettingsApplied
    3. Sends one InjectUserMessage
    4. Prints events until the agent's reply text arrives
    5. Sends Close
    """
    trace_id = str(uuid.uuid4())
    uri = f"{url}?traceId={trace_id}"
    logger.info(f"Starting simple client with trace id: {trace_id}")

    async with websockets.connect(uri) as websocket:
        logger.info(f"WebSocket connection established to {url}")

        await websocket.send(json.dumps(build_settings("You are a concise, friendly assistant.")))
        await wait_for(websocket, "SettingsApplied")
        # The greeting arrives as the first assistant ConversationText
        await wait_for(websocket, "ConversationText")

        logger.info(f"Sending user message: {text}")
        await websocket.send(json.dumps({"type": "InjectUserMessage", "content": text}))

        audio_chunks = await receive_reply(websocket)
        if audio_out and audio_chunks:
            save_wav_file(audio_chunks, audio_out)

        await websocket.send(json.dumps({"type": "Close"}))
        logger.info("Client finished successfully")


async def wait_for(websocket, event_type: str) -> dict:
    """Read events until one of ``event_type`` arrives; an Error ends the client."""
    while True:
        message = await asyncio.wait_for(websocket.recv(), timeout=REPLY_TIMEOUT)
        if isinstance(message, bytes):
            continue
        data = json.loads(message)
        if data.get("type") == "Error":
            raise RuntimeError(f"Proxy error {data.get('code')}: {data.get('description')}")
        logger.info(f"Received {data.get('type')}")
        if data.get("type") == event_type:
            return data


async def receive_reply(websocket) -> List[bytes]:
    """
    Print events until the assistant's reply text arrives.

    Returns:
        List[bytes]: PCM frames the agent spoke during the reply
    """
    audio_chunks: List[bytes] = []
    while True:
        message = await asyncio.wait_for(websocket.recv(), timeout=REPLY_TIMEOUT)
        if isinstance(message, bytes):
            audio_chunks.append(message)
            continue
        data = json.loads(message)
        message_type = data.get("type")
        if message_type == "Error":
            raise RuntimeError(f"Proxy error {data.get('code')}: {data.get('description')}")
        if message_type == "ConversationText":
            logger.info(f"{data['role']}: {data['content']}")
            if data["role"] == "assistant" and not data["content"].startswith("Function call:"):
                return audio_chunks
        else:
            logger.debug(f"Received message type: {message_type}")


def save_wav_file(audio_chunks: List[bytes], filename: str) -> None:
    """Save the agent's PCM audio as a WAV file."""
    audio_data = b"".join(audio_chunks)
    with wave.open(filename, "wb") as wav_file:
        wav_file.setnchannels(AUDIO_CHANNELS)
        wav_file.setsampwidth(AUDIO_SAMPLE_WIDTH)
        wav_file.setframerate(AUDIO_SAMPLE_RATE)
        wav_file.writeframes(audio_data)
    duration_seconds = len(audio_data) / (AUDIO_SAMPLE_RATE * AUDIO_SAMPLE_WIDTH * AUDIO_CHANNELS)
    logger.info(f"Saved {duration_seconds:.2f}s of audio to {filename}")


def parse_args():
    parser = argparse.ArgumentParser(description="Talk to the realtime agent proxy")
    parser.add_argument("--url", default=DEFAULT_URL, help=f"Proxy WebSocket URL (default: {DEFAULT_URL})")
    parser.add_argument("--text", default="What can you help me with?", help="User message to send")
    parser.add_argument("--audio-out", default=None, help="Save the agent's audio to this WAV file")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    logger.info("Starting simple realtime agent proxy client")
    try:
        asyncio.run(run_simple_client(args.url, args.text, args.audio_out))
    except (RuntimeError, asyncio.TimeoutError, OSError, websockets.exceptions.WebSocketException) as e:
        logger.error(f"Client failed: {e}")
        sys.exit(1)
