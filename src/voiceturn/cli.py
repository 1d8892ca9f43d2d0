"""CLI application for voice conversations."""
import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from voiceturn.config import Config
from voiceturn.core.session import ConversationSession, create_session
from voiceturn.exceptions import DeviceError
from voiceturn.logging_config import set_log_level, setup_logger
from voiceturn.orchestration.fsm import State

logger = setup_logger("voiceturn.cli")


class CLI:
    """Runs one conversation session against the configured endpoints."""

    def __init__(self, config: Config):
        self.config = config
        self.session: Optional[ConversationSession] = None
        self._stopped: Optional[asyncio.Event] = None

    async def run(self) -> int:
        """Run the CLI application."""
        logger.info("=" * 50)
        logger.info("voiceturn - Voice Conversation")
        logger.info("=" * 50)
        logger.info(f"Transcription: {self.config.endpoints.transcription_url}")
        logger.info(f"Responses:     {self.config.endpoints.response_url}")
        logger.info(f"Synthesis:     {self.config.endpoints.synthesis_url}")
        logger.info("Press Ctrl+C to exit")
        logger.info("=" * 50)

        self._stopped = asyncio.Event()
        self.session = create_session(self.config)
        self.session.set_state_change_callback(self._on_state_change)
        self.session.set_error_callback(self._on_error)
        self.session.set_transcript_callback(lambda text: logger.info(f"[You] {text}"))

        try:
            await self.session.start()
        except DeviceError as e:
            logger.error(f"Cannot start audio: {e}")
            await self.shutdown()
            return 1

        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            logger.info("Main loop cancelled")
        finally:
            await self.shutdown()
        return 0

    def _on_state_change(self, old: State, new: State) -> None:
        labels = {
            State.LISTENING: "Listening...",
            State.TRANSCRIBING: "Transcribing...",
            State.AWAITING_RESPONSE: "Thinking...",
            State.SPEAKING: "Speaking...",
            State.DISCONNECTED: "Disconnected",
        }
        logger.info(f"[{labels.get(new, new.value)}]")
        if new == State.DISCONNECTED and self._stopped is not None:
            self._stopped.set()

    def _on_error(self, error: Exception) -> None:
        logger.warning(f"[Error] {error}")

    def request_stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()

    async def shutdown(self) -> None:
        """Shutdown the application."""
        logger.info("Shutting down...")
        if self.session:
            history = self.session.history
            await self.session.close()
            logger.info(f"Conversation ended after {len(history)} messages")
        logger.info("Goodbye!")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Talk to an assistant through your microphone.")
    parser.add_argument("--env", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("--stream", action="store_true", help="Stream replies sentence by sentence")
    parser.add_argument("--no-greeting", action="store_true", help="Start listening without a greeting")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def run_cli(args: argparse.Namespace) -> int:
    """Run the CLI application."""
    config = Config.load(args.env)
    set_log_level("DEBUG" if args.verbose else config.logging.level)
    if args.stream:
        config.endpoints.stream_responses = True
    if args.no_greeting:
        config.session.greeting = None

    cli = CLI(config)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cli.request_stop)
        loop.add_signal_handler(signal.SIGTERM, cli.request_stop)
    except NotImplementedError:
        # Windows event loops fall back to KeyboardInterrupt
        pass
    return await cli.run()


def main(argv=None) -> None:
    """CLI entry point."""
    args = parse_args(argv)
    try:
        code = asyncio.run(run_cli(args))
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
