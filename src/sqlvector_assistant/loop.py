"""
Interaction Loop
================

Console question/answer loop for the assistant.

States:
    AWAITING_INPUT -> PROCESSING -> AWAITING_INPUT
    AWAITING_INPUT -> STOPPED        (exit keyword or end of input)

Reading input is the only suspension point outside a turn. The reader and
writer are injectable so the same loop can be driven by scripted input.

Ctrl+C while an answer is being produced cancels that turn only and the
loop returns to the prompt. Ctrl+C at the prompt ends the program.
"""

import asyncio
import logging
import signal
import sys
import threading
from typing import Awaitable, Callable, Optional

from .config import AssistantConfig
from .exceptions import AssistantError, GenerationError, RetrievalError
from .llm_backends import LLMBackend
from .log_utils import RED, RESET, log_error
from .models import LoopState, TurnOutcome, TurnStatus
from .prompt import build_prompt
from .retriever import ContextRetriever

logger = logging.getLogger(__name__)

BANNER = "--- AdventureWorks AI Assistant (SQLVector) ---"
INPUT_PROMPT = "\nAsk a question about a product (or type '{exit}' to quit): "
SEARCHING_MESSAGE = "\n> 1. Searching database for relevant context..."
FOUND_MESSAGE = "> Found relevant context!"
GENERATING_MESSAGE = "> 2. Generating AI answer..."
ANSWER_HEADER = "\n--- AI Answer ---"
ANSWER_FOOTER = "\n-----------------"
INTERRUPTED_MESSAGE = "\n> Answer interrupted."
EMPTY_CONTEXT_MESSAGE = (
    "\n> I couldn't find any relevant product descriptions to answer your question."
)

Reader = Callable[[str], Awaitable[Optional[str]]]
Writer = Callable[[str], None]


async def console_reader(prompt: str) -> Optional[str]:
    """
    Read one console line without blocking the event loop; None on EOF.

    The read runs on a daemon thread so an interrupted prompt never holds up
    interpreter shutdown.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _deliver(line: Optional[str], error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line)

    def _read() -> None:
        line, error = None, None
        try:
            line = input(prompt)
        except EOFError:
            pass
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(_deliver, line, error)
        except RuntimeError:
            # Event loop already closed after Ctrl+C at the prompt
            pass

    threading.Thread(target=_read, name="console-reader", daemon=True).start()
    return await future


def console_writer(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class InteractionLoop:
    """
    Drives retrieval and generation for each question the user enters.

    Usage:
        loop = InteractionLoop(retriever, backend, config)
        await loop.run()

        # Or a single turn
        outcome = await loop.process_turn("What bikes do you sell?")
    """

    def __init__(
        self,
        retriever: ContextRetriever,
        backend: LLMBackend,
        config: AssistantConfig,
        reader: Optional[Reader] = None,
        writer: Optional[Writer] = None,
    ):
        self.retriever = retriever
        self.backend = backend
        self.config = config
        self.reader = reader or console_reader
        self.writer = writer or console_writer
        self.state = LoopState.AWAITING_INPUT
        self._turn: Optional[asyncio.Future] = None
        self._interrupted = False

    def _print(self, text: str = "") -> None:
        self.writer(text + "\n")

    def is_exit(self, line: str) -> bool:
        return line.strip().casefold() == self.config.exit_keyword.casefold()

    async def run(self) -> None:
        """Read and answer questions until the exit keyword or end of input."""
        self._print(BANNER)
        prompt = INPUT_PROMPT.format(exit=self.config.exit_keyword)

        while self.state != LoopState.STOPPED:
            line = await self.reader(prompt)

            if line is None or self.is_exit(line):
                self.state = LoopState.STOPPED
                break

            if not line.strip():
                continue

            self._interrupted = False
            self._turn = asyncio.ensure_future(self.process_turn(line))
            remove_handler = self._install_interrupt_handler()
            try:
                await self._turn
            except asyncio.CancelledError:
                if not self._interrupted:
                    raise
                self._print(INTERRUPTED_MESSAGE)
            finally:
                remove_handler()
                self._turn = None

        logger.debug("Interaction loop stopped")

    def interrupt(self) -> bool:
        """
        Cancel the turn in progress.

        Returns:
            True if a turn was cancelled, False when the loop is idle
        """
        if self._turn is None or self._turn.done():
            return False
        self._interrupted = True
        self._turn.cancel()
        return True

    def _install_interrupt_handler(self) -> Callable[[], None]:
        """Route SIGINT to interrupt() for the duration of one turn."""
        loop = asyncio.get_running_loop()
        previous = signal.getsignal(signal.SIGINT)
        try:
            loop.add_signal_handler(signal.SIGINT, self.interrupt)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops and loops outside the main thread
            return lambda: None

        def remove() -> None:
            loop.remove_signal_handler(signal.SIGINT)
            if previous is not None:
                signal.signal(signal.SIGINT, previous)

        return remove

    async def process_turn(self, question: str) -> TurnOutcome:
        """
        Answer one question: retrieve, build the prompt, stream the answer.

        Failures are reported to the writer and returned as the outcome;
        they never escape this method.
        """
        if not question.strip():
            return TurnOutcome(status=TurnStatus.SKIPPED, question=question)

        self.state = LoopState.PROCESSING
        try:
            return await self._answer(question)
        except RetrievalError as e:
            return self._report_failure(question, TurnStatus.RETRIEVAL_FAILED, e)
        except GenerationError as e:
            return self._report_failure(question, TurnStatus.GENERATION_FAILED, e)
        except AssistantError as e:
            return self._report_failure(question, TurnStatus.RETRIEVAL_FAILED, e)
        except Exception as e:
            logger.exception("Unexpected failure while answering")
            return self._report_failure(question, TurnStatus.GENERATION_FAILED, e)
        finally:
            if self.state == LoopState.PROCESSING:
                self.state = LoopState.AWAITING_INPUT

    async def _answer(self, question: str) -> TurnOutcome:
        self._print(SEARCHING_MESSAGE)
        context = await self.retriever.fetch_context(question)

        if context.is_empty:
            self._print(EMPTY_CONTEXT_MESSAGE)
            return TurnOutcome(status=TurnStatus.EMPTY_CONTEXT, question=question)

        self._print(FOUND_MESSAGE)
        prompt = build_prompt(context.text, question, persona=self.config.assistant_persona)

        self._print(GENERATING_MESSAGE)
        self._print(ANSWER_HEADER)

        answer_chars = 0
        async for chunk in self.backend.generate_stream(prompt):
            if chunk.content:
                self.writer(chunk.content)
                answer_chars += len(chunk.content)

        self._print(ANSWER_FOOTER)
        return TurnOutcome(
            status=TurnStatus.ANSWERED,
            question=question,
            chunk_count=len(context),
            answer_chars=answer_chars,
        )

    def _report_failure(self, question: str, status: TurnStatus, error: Exception) -> TurnOutcome:
        log_error("Interaction Loop", f"{type(error).__name__}: {error}")
        self._print(f"\n{RED}An error occurred: {error}{RESET}")
        return TurnOutcome(status=status, question=question, error=str(error))
