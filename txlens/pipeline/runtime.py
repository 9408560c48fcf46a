"""Run-scoped collaborators handed to the pipeline nodes."""

import inspect
from dataclasses import dataclass, field

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.config.settings import Settings, get_settings
from txlens.llm.chains import LangChainNarrativeGenerator
from txlens.llm.generator import NarrativeGenerator
from txlens.pipeline.progress import ProgressHandle
from txlens.processing.patterns import HeuristicPatternClassifier, PatternClassifier
from txlens.sources.base import ExplorerService, LabelStore, LedgerQuery, TraceService
from txlens.sources.explorer import EtherscanExplorer
from txlens.sources.labels import SqliteLabelStore
from txlens.sources.rpc import JsonRpcLedger
from txlens.sources.selectors import SelectorDatabase
from txlens.sources.trace import JsonRpcTraceService

logger = structlog.get_logger(__name__)


@dataclass
class PipelineServices:
    """Adapters and policies used by one analysis run."""

    ledger: LedgerQuery
    trace: TraceService
    explorer: ExplorerService
    labels: LabelStore
    selectors: SelectorDatabase
    generator: NarrativeGenerator
    classifier: PatternClassifier = field(default_factory=HeuristicPatternClassifier)
    settings: Settings = field(default_factory=get_settings)

    async def aclose(self) -> None:
        """Close every adapter that holds a connection."""
        for service in (self.ledger, self.trace, self.explorer):
            closer = getattr(service, "aclose", None)
            if closer is None:
                continue
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning("service_close_failed", service=type(service).__name__, error=str(e))
        for service in (self.labels, self.selectors):
            closer = getattr(service, "close", None)
            if closer is not None:
                closer()


def build_default_services(settings: Settings, chain_id: int) -> PipelineServices:
    """Construct the production adapters from settings."""
    return PipelineServices(
        ledger=JsonRpcLedger.from_url(settings.rpc_url, timeout=settings.ledger_timeout_seconds),
        trace=JsonRpcTraceService.from_settings(settings),
        explorer=EtherscanExplorer.from_settings(settings, chain_id=chain_id),
        labels=SqliteLabelStore(settings.label_db_path),
        selectors=SelectorDatabase(settings.selector_db_path),
        generator=LangChainNarrativeGenerator(),
        settings=settings,
    )


def get_services(config: RunnableConfig) -> PipelineServices:
    return config["configurable"]["services"]


def get_progress(config: RunnableConfig) -> ProgressHandle:
    handle = (config.get("configurable") or {}).get("progress")
    return handle if handle is not None else ProgressHandle()
