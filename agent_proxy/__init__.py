"""
Realtime Agent Proxy - voice-agent protocol in front of the OpenAI Realtime API

This application lets a client that speaks the voice-agent session protocol
(JSON control messages such as Settings, InjectUserMessage and
FunctionCallResponse, plus raw PCM audio in binary frames) talk to the OpenAI
Realtime API as if the upstream spoke that protocol natively.

The proxy translates both directions and keeps the upstream's turn rules:
only one response may be open at a time, nothing content-bearing is sent
before the session is configured, and input audio is only committed once
enough of it has been buffered.

Key Components:
- config: constants, environment settings and logging setup
- models: wire models for both protocols and per-connection state
- proxy: translator, session state machine, audio commit gate, upstream
  client and the per-connection orchestrator
- main: FastAPI application exposing the WebSocket endpoint

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - OPENAI_PROXY_PORT: Port to run the proxy on (default 8080)
   - LOG_LEVEL: debug, info, warn or error (default info)

2. Start the proxy:
   ```bash
   python run.py
   ```

3. Point the voice-agent client at ws://your-host:8080/openai?traceId=<id>
"""

__version__ = "1.0.0"
