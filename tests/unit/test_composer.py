"""Unit tests for answer composition."""
import pytest

from docqa.rag.composer import (
    NO_INFORMATION_ANSWER,
    AnswerComposer,
    build_local_answer,
    build_prompt,
)
from docqa.rag.retriever import BLOCK_SEPARATOR
from tests.conftest import FakeGenerator

CONTEXT = BLOCK_SEPARATOR.join([
    "# [1] Handbook\nThe library opens at eight.",
    "# [2] FAQ\nParking permits last one semester.",
])


class RaisingBackend:
    async def generate(self, prompt, temperature=None, max_tokens=None):
        raise RuntimeError("socket closed")


class TestBuildLocalAnswer:
    def test_bullets_per_block(self):
        answer = build_local_answer(CONTEXT)

        assert answer.startswith("Based on what I found in the documents:")
        assert "• Handbook: The library opens at eight." in answer
        assert "• FAQ: Parking permits last one semester." in answer

    def test_at_most_three_blocks(self):
        context = BLOCK_SEPARATOR.join(f"# [{i}] Doc{i}\nbody {i}" for i in range(1, 6))
        answer = build_local_answer(context)

        assert answer.count("•") == 3
        assert "Doc4" not in answer

    def test_long_body_truncated(self):
        answer = build_local_answer("# [1] Long\n" + "w" * 400)
        assert "• Long: " + "w" * 300 + "..." in answer

    def test_empty_context(self):
        assert build_local_answer("") == NO_INFORMATION_ANSWER


class TestAnswerComposer:
    @pytest.mark.asyncio
    async def test_uses_backend_answer(self):
        generator = FakeGenerator(reply="  The library opens at eight [doc:Handbook].  ")
        composer = AnswerComposer(backend=generator, temperature=0.85, max_tokens=512)

        answer = await composer.compose("When does the library open?", CONTEXT)

        assert answer == "The library opens at eight [doc:Handbook]."
        assert generator.prompts == [build_prompt("When does the library open?", CONTEXT)]
        assert "[doc:" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_context_capped_before_generation(self):
        generator = FakeGenerator()
        composer = AnswerComposer(backend=generator, context_limit=20)

        await composer.compose("question", CONTEXT)

        assert CONTEXT[:20] in generator.prompts[0]
        assert CONTEXT[:21] not in generator.prompts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "backend",
        [None, FakeGenerator(fail=True), FakeGenerator(reply="   "), RaisingBackend()],
    )
    async def test_fallback_is_never_empty(self, backend):
        answer = await AnswerComposer(backend=backend).compose("question", CONTEXT)

        assert answer.strip()
        assert answer == build_local_answer(CONTEXT)
