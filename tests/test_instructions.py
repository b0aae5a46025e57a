from conftest import Counter

from support_triage.intents import taxonomy
from support_triage.llm.instructions import (
    InMemoryInstructionRepository,
    InstructionCache,
    InstructionSection,
    SystemPromptBuilder,
)
from support_triage.settings import TriageSettings

SECTIONS = [
    InstructionSection(section_key="tone", title="Tone", content="Be warm.", display_order=2),
    InstructionSection(section_key="safety", title="Safety", content="No promises.", display_order=1),
    InstructionSection(
        section_key="intent_orders", title="Orders", content="Quote tracking numbers.", display_order=9
    ),
]


class _FailingRepository(InMemoryInstructionRepository):
    fail = False

    async def list_sections(self):
        if self.fail:
            raise RuntimeError("connection reset")
        return await super().list_sections()


async def test_fallback_prompt_when_store_is_empty():
    settings = TriageSettings(agent_name="Sam", company_name="Gauge Works")
    builder = SystemPromptBuilder(InstructionCache(InMemoryInstructionRepository()), settings)
    prompt = await builder.build(taxonomy.ORDER_STATUS)
    assert prompt.startswith("You are Sam, a helpful customer support agent for Gauge Works.")
    assert 'Sign off with "– Sam"' in prompt
    assert "Intent-Specific Guidance" not in prompt


async def test_general_sections_in_display_order_with_intent_guidance():
    cache = InstructionCache(InMemoryInstructionRepository(SECTIONS))
    builder = SystemPromptBuilder(cache, TriageSettings())

    prompt = await builder.build(taxonomy.ORDER_STATUS)
    assert prompt.index("## Safety\nNo promises.") < prompt.index("## Tone\nBe warm.")
    assert prompt.endswith("\n## Intent-Specific Guidance\nQuote tracking numbers.\n")
    assert "## Orders" not in prompt

    other = await builder.build(taxonomy.INSTALL_GUIDANCE)
    assert "Quote tracking numbers." not in other


async def test_cache_reloads_after_ttl_and_on_invalidate():
    repository = InMemoryInstructionRepository(SECTIONS)
    counter = Counter()
    cache = InstructionCache(repository, ttl_seconds=300, clock=counter)

    await cache.get()
    counter.value = 299
    await cache.get()
    assert repository.loads == 1

    counter.value = 300
    await cache.get()
    assert repository.loads == 2

    cache.invalidate()
    await cache.get()
    assert repository.loads == 3


async def test_edits_apply_after_invalidate():
    repository = InMemoryInstructionRepository(list(SECTIONS))
    cache = InstructionCache(repository)
    builder = SystemPromptBuilder(cache, TriageSettings())
    await builder.build()

    repository.sections[0] = SECTIONS[0].model_copy(update={"content": "Be brief."})
    assert "Be warm." in await builder.build()
    cache.invalidate()
    assert "Be brief." in await builder.build()


async def test_failed_reload_serves_previous_sections():
    repository = _FailingRepository(SECTIONS)
    counter = Counter()
    cache = InstructionCache(repository, ttl_seconds=10, clock=counter)
    assert "tone" in await cache.get()

    repository.fail = True
    counter.value = 60
    sections = await cache.get()
    assert set(sections) == {"tone", "safety", "intent_orders"}


async def test_failed_first_load_falls_back_to_builtin_prompt():
    repository = _FailingRepository()
    repository.fail = True
    builder = SystemPromptBuilder(InstructionCache(repository), TriageSettings())
    prompt = await builder.build()
    assert "## Core Safety Rules" in prompt
