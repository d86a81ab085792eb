"""Token and cost telemetry for generative calls."""

from pagegen.core.config import get_settings
from pagegen.core.logging import get_logger

logger = get_logger(__name__)

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (0.80, 4.0),
    "claude-3-5-haiku-20241022": (0.80, 4.0),
    "text-embedding-3-small": (0.02, 0.0),
    "text-embedding-3-large": (0.13, 0.0),
}


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    """Estimated USD cost; unknown models fall back to a family prefix match, else 0."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        family = model.rsplit("-", 1)[0]
        pricing = next((v for k, v in MODEL_PRICING.items() if k.startswith(family)), None)
    if not pricing:
        logger.debug(f"No pricing for model '{model}', recording $0")
        return 0.0

    input_rate, output_rate = pricing
    return round((tokens_input * input_rate + tokens_output * output_rate) / 1_000_000, 6)


def log_llm_usage(
    workflow: str,
    model: str,
    provider: str,
    tokens_input: int,
    tokens_output: int,
    duration_ms: int = 0,
    chain: str | None = None,
    run_id: str | None = None,
) -> None:
    """Record one model call in the usage table. Fire-and-forget."""
    try:
        from pagegen.db.supabase_client import get_supabase

        cost = estimate_cost(model, tokens_input, tokens_output)
        row = {
            "workflow": workflow,
            "model": model,
            "provider": provider,
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "estimated_cost_usd": cost,
            "duration_ms": duration_ms,
        }
        if chain:
            row["chain"] = chain
        if run_id:
            row["run_id"] = run_id

        get_supabase().table(get_settings().LLM_USAGE_TABLE).insert(row).execute()
        logger.debug(
            f"LLM usage logged: {workflow}/{chain or '-'} model={model} "
            f"tokens={tokens_input}+{tokens_output} cost=${cost:.4f}"
        )
    except Exception as e:
        # Telemetry never affects the pipeline
        logger.debug(f"Failed to log LLM usage: {e}")
