from typing import Optional
from ..common.base import AgentBase
from ..common.messages import Budget, RecipientProfile, RecommendResponse, RenderingMeta
from ..common.utils import logger, log_context, generate_request_id, Timer
from ..config import Settings
from ..discovery.agent import DiscoveryAgent
from ..discovery.gemini_adapter import GeminiAdapter
from ..discovery.phrases import FallbackPhraseExpander, GeminiPhraseExpander, PhraseExpander
from ..explainer.agent import ExplainerAgent, is_profile_complete, next_action_for
from ..ranker.agent import RankerAgent
from ..wishlist.store import InMemoryKeyValueStore, RecommendationMemory
from .spec_builder import GeminiSpecSuggester, NullSpecSuggester, QuerySpecBuilder

def repair_profile_budget(profile: RecipientProfile) -> RecipientProfile:
    """Copy of the profile whose budget satisfies min <= max.

    Unlike the query spec budget, an empty budget stays empty here so the
    ranker and explainer still see that no budget was given.
    """
    low, high = profile.budget.min, profile.budget.max
    if low > 0 and high == 0:
        high = max(low * 1.5, low + 50)
    elif low > high > 0:
        low, high = high, low
    else:
        return profile

    budget = Budget(min=low, max=high, currency=profile.budget.currency)
    return profile.model_copy(update={"budget": budget})

class PlannerAgent(AgentBase):
    """Main orchestrator that runs the recommendation pipeline for one profile."""

    def __init__(self, spec_builder: QuerySpecBuilder, expander: PhraseExpander,
                 discovery: DiscoveryAgent, ranker: Optional[RankerAgent] = None,
                 explainer: Optional[ExplainerAgent] = None,
                 memory: Optional[RecommendationMemory] = None):
        super().__init__("planner")
        self.spec_builder = spec_builder
        self.expander = expander
        self.discovery = discovery
        self.ranker = ranker or RankerAgent()
        self.explainer = explainer or ExplainerAgent()
        self.memory = memory or RecommendationMemory(InMemoryKeyValueStore())

    @classmethod
    def from_settings(cls, settings: Settings, memory: Optional[RecommendationMemory] = None) -> "PlannerAgent":
        if settings.GEMINI_API_KEY:
            backend = GeminiAdapter(settings.GEMINI_API_KEY, settings.GEMINI_MODEL)
            suggester = GeminiSpecSuggester(backend, timeout=settings.LLM_SPEC_TIMEOUT)
            expander = GeminiPhraseExpander(
                backend, timeout=settings.LLM_PHRASE_TIMEOUT, temperature=settings.LLM_PHRASE_TEMPERATURE
            )
        else:
            suggester = NullSpecSuggester()
            expander = FallbackPhraseExpander()

        return cls(
            spec_builder=QuerySpecBuilder(
                suggester, default_limit=settings.DEFAULT_LIMIT,
                low_budget_threshold=settings.LOW_BUDGET_THRESHOLD
            ),
            expander=expander,
            discovery=DiscoveryAgent.from_settings(settings),
            ranker=RankerAgent(limit=settings.MAX_RANKED),
            memory=memory
        )

    async def handle_recommendation(self, profile: RecipientProfile, session_id: str,
                                    request_id: Optional[str] = None) -> RecommendResponse:
        """Build a spec, fan out discovery, rank, explain and assemble the response."""
        if request_id is None:
            request_id = generate_request_id()

        trace = self.create_trace(request_id, "recommend")
        with log_context(trace.request_id):
            logger.info(f"Starting recommendation pipeline: interests={profile.interests} budget={profile.budget.min:g}-{profile.budget.max:g}")

        profile = repair_profile_budget(profile)

        with Timer("spec build", trace.request_id):
            spec = await self.spec_builder.build(profile, trace.request_id)

        with Timer("phrase expansion", trace.request_id):
            phrases = await self.expander.expand(profile, trace.request_id)

        with Timer("discovery", trace.request_id):
            products, links = await self.discovery.discover(spec, phrases, trace.request_id)

        ranked = self.ranker.rank(profile, products, trace.request_id)
        self.memory.remember(session_id, ranked)

        explanations = self.explainer.explain(profile, ranked, trace.request_id)
        follow_ups = self.explainer.follow_ups(profile, ranked, trace.request_id)

        if not ranked:
            with log_context(trace.request_id):
                logger.warning("No products matched the profile")

        return RecommendResponse(
            meta=RenderingMeta(
                profile_filled=is_profile_complete(profile),
                next_action=next_action_for(profile),
                gemini_links=links
            ),
            explanations=explanations,
            follow_up_suggestions=follow_ups,
            products_ranked=[product.id for product in ranked],
            products=ranked
        )

    async def close(self):
        await self.discovery.close()
