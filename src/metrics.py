"""
Document Import — Metrics Collection
====================================
Prometheus metrics for observability.

Usage:
    from metrics import import_metrics, llm_metrics

    # Time a pipeline stage and record its outcome
    with import_metrics.track_stage("timeline") as stage:
        timeline = await extractor.extract(corpus, context)
        stage["outcome"] = "ok"

    # Count a finished run
    import_metrics.runs_total.labels(result='success').inc()
"""

from prometheus_client import Counter, Histogram, Gauge
import time
from contextlib import contextmanager


# =============================================================================
# IMPORT PIPELINE METRICS
# =============================================================================

class ImportMetrics:
    """Metrics for document import runs"""

    def __init__(self):
        self.runs_total = Counter(
            'import_runs_total',
            'Import pipeline runs',
            ['result']  # success, failed, fatal
        )

        self.run_duration = Histogram(
            'import_run_duration_seconds',
            'Wall-clock time of one import run',
            buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0]
        )

        self.stage_duration = Histogram(
            'import_stage_duration_seconds',
            'Time spent in one pipeline stage',
            ['stage'],
            buckets=[0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0]
        )

        self.stage_outcome_total = Counter(
            'import_stage_outcome_total',
            'Pipeline stage outcomes',
            ['stage', 'outcome']  # outcome: ok, skipped, degraded, failed
        )

        self.tasks_created_total = Counter(
            'import_tasks_created_total',
            'Tasks created from workstreams',
            ['category']  # epic, task, subtask, standalone
        )

        self.dependencies_created_total = Counter(
            'import_dependencies_created_total',
            'Dependency edges written'
        )

        self.cycles_rejected_total = Counter(
            'import_dependency_batches_rejected_total',
            'Dependency batches rejected because they contained a cycle'
        )

        self.active_imports = Gauge(
            'import_active_runs',
            'Number of import runs currently in progress'
        )

    @contextmanager
    def track_stage(self, stage: str):
        """Context manager to time a stage; the yielded dict carries its outcome"""
        start = time.time()
        metadata = {"outcome": "ok"}

        try:
            yield metadata
        except Exception:
            metadata["outcome"] = "failed"
            raise
        finally:
            self.stage_duration.labels(stage=stage).observe(time.time() - start)
            self.stage_outcome_total.labels(stage=stage, outcome=metadata["outcome"]).inc()


# =============================================================================
# LLM METRICS
# =============================================================================

class LLMMetrics:
    """Metrics for LLM API calls"""

    def __init__(self):
        self.requests_total = Counter(
            'llm_requests_total',
            'Total LLM API calls',
            ['model', 'provider', 'result']  # result: success, error
        )

        self.tokens_total = Counter(
            'llm_tokens_total',
            'Total tokens used',
            ['model', 'type']  # type: prompt, completion
        )

        self.cost_dollars_total = Counter(
            'llm_cost_dollars_total',
            'Estimated LLM costs in USD',
            ['model', 'provider']
        )

        self.request_duration = Histogram(
            'llm_request_duration_seconds',
            'LLM API request duration',
            ['model', 'provider'],
            buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0]
        )

    @contextmanager
    def track_request(self, model: str, provider: str):
        """Context manager to track an LLM request"""
        start = time.time()
        result = "error"
        metadata = {
            "result": "success",
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "cost": 0.0
        }

        try:
            yield metadata
            result = metadata.get("result", "success")

            prompt_tokens = metadata.get("prompt_tokens", 0)
            completion_tokens = metadata.get("completion_tokens", 0)
            if prompt_tokens > 0:
                self.tokens_total.labels(model=model, type="prompt").inc(prompt_tokens)
            if completion_tokens > 0:
                self.tokens_total.labels(model=model, type="completion").inc(completion_tokens)

            cost = metadata.get("cost", 0.0)
            if cost > 0:
                self.cost_dollars_total.labels(model=model, provider=provider).inc(cost)

        finally:
            duration = time.time() - start
            self.request_duration.labels(model=model, provider=provider).observe(duration)
            self.requests_total.labels(model=model, provider=provider, result=result).inc()


# =============================================================================
# GLOBAL INSTANCES
# =============================================================================

import_metrics = ImportMetrics()
llm_metrics = LLMMetrics()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def estimate_llm_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """
    Estimate cost based on published per-token pricing.
    This is approximate - update with actual pricing.
    """
    # Pricing per 1M tokens (input, output)
    pricing = {
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.6),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-4": (30.0, 60.0),
        "gpt-3.5-turbo": (0.5, 1.5),
        "claude-3-opus": (15.0, 75.0),
        "claude-3-haiku": (0.25, 1.25),
        "claude-sonnet-4": (3.0, 15.0),
        "claude-sonnet-4-20250514": (3.0, 15.0),
    }

    # Default to reasonable estimate if model not found
    input_price, output_price = pricing.get(model, (5.0, 15.0))

    input_cost = (prompt_tokens / 1_000_000) * input_price
    output_cost = (completion_tokens / 1_000_000) * output_price

    return input_cost + output_cost
