"""Main enrichment pipeline orchestrator."""

import asyncio
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterator, List, Optional
import httpx
import polars as pl
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeRemainingColumn

from ..config import settings, PEOPLE_SEARCH, PHONE_INTEL, DNC, AGE
from ..errors import AuthError, ConfigurationError, ProviderError, ValidationError
from ..logging_config import get_logger
from ..cache import TokenStore
from ..lookups.postal_codes import lookup_postal_code
from ..models import (
    EnrichmentResult,
    Failed,
    LeadRecord,
    ProgressEvent,
    Skipped,
    Stage,
    StageError,
    StageOutcome,
    Success,
)
from ..normalize import (
    clean_name_part,
    mask_phone,
    normalize_city,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_postal_code,
    normalize_state,
)
from ..fetchers.base import AgeProvider, DncProvider, PeopleSearchProvider, PhoneIntelProvider
from ..fetchers.cognito import CognitoTokenIssuer
from ..fetchers.dnc_scrub import DncScrubClient
from ..fetchers.skip_tracing import SkipTracingClient
from ..fetchers.telnyx import TelnyxClient
from .gatekeep import should_proceed
from .rate_limiter import RateLimiter
from .retry import call_provider
from .token_cache import TokenCache
from .batch import BatchRunner, JsonCheckpointStore, save_results

logger = get_logger(__name__)
console = Console()

ProgressCallback = Callable[[ProgressEvent], None]

# Provider billed by each external stage
STAGE_PROVIDERS: Dict[Stage, str] = {
    Stage.PHONE_DISCOVERY: PEOPLE_SEARCH,
    Stage.LINE_TYPE: PHONE_INTEL,
    Stage.DNC: DNC,
    Stage.AGE: AGE,
}


class ProgressChannel:
    """Typed progress event stream.

    Pass an instance as ``on_progress`` and consume it with ``async for`` from
    another task. ``close()`` ends the iteration.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()

    def __call__(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._queue.put_nowait(None)

    def __aiter__(self) -> "ProgressChannel":
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


def _full_name(result: EnrichmentResult) -> Optional[str]:
    name = " ".join(filter(None, [result.first_name, result.last_name])).strip()
    return name or None


def _citystatezip(result: EnrichmentResult) -> Optional[str]:
    region = " ".join(filter(None, [result.state, result.postal_code]))
    location = ", ".join(filter(None, [result.city, region]))
    return location or None


class LeadEnricher:
    """Runs one lead through the fixed sequence of enrichment stages.

    Stages: normalize, postal code, phone discovery, line type, gatekeep,
    DNC, age. Provider clients, the rate limiter and the token cache are
    injected so a batch shares one instance of each.
    """

    def __init__(
        self,
        people_search: PeopleSearchProvider,
        phone_intel: PhoneIntelProvider,
        dnc: DncProvider,
        age: AgeProvider,
        *,
        rate_limiter: RateLimiter,
        token_cache: TokenCache,
    ):
        self.people_search = people_search
        self.phone_intel = phone_intel
        self.dnc = dnc
        self.age = age
        self.rate_limiter = rate_limiter
        self.token_cache = token_cache

    async def run(
        self,
        lead: LeadRecord,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EnrichmentResult:
        """
        Enrich a single lead.

        Args:
            lead: Input record, never modified
            on_progress: Receives one ``ProgressEvent`` per stage

        Returns:
            The accumulated enrichment, including stage errors and skips
        """
        label = lead.display_name()
        result = EnrichmentResult()
        logger.debug(f"Enriching {label}")

        async def run_stage(stage: Stage, step: Callable[[], Awaitable[StageOutcome]]) -> StageOutcome:
            outcome = await self._execute(stage, step)
            self._apply(stage, outcome, result, label)
            if on_progress:
                on_progress(ProgressEvent(lead=label, stage=stage, outcome=outcome))
            return outcome

        await run_stage(Stage.NORMALIZE, lambda: self._normalize(lead))
        await run_stage(Stage.POSTAL_CODE, lambda: self._postal_code(result))
        await run_stage(Stage.PHONE_DISCOVERY, lambda: self._discover_phone(result))
        await run_stage(Stage.LINE_TYPE, lambda: self._line_type(result))

        decision = should_proceed(result)
        gate = await run_stage(Stage.GATEKEEP, lambda: self._gatekeep(decision.proceed, decision.reason))
        if isinstance(gate, Skipped):
            logger.info(f"{label}: gatekeep stopped enrichment ({decision.reason})")
            for stage in (Stage.DNC, Stage.AGE):
                await run_stage(stage, lambda: self._skip(f"gatekeep: {decision.reason}"))
            return result

        await run_stage(Stage.DNC, lambda: self._check_dnc(result))
        await run_stage(Stage.AGE, lambda: self._lookup_age(result))

        logger.debug(f"Completed enrichment for {label}")
        return result

    async def _execute(self, stage: Stage, step: Callable[[], Awaitable[StageOutcome]]) -> StageOutcome:
        provider = STAGE_PROVIDERS.get(stage)
        try:
            return await step()
        except ValidationError as e:
            return Skipped(str(e))
        except ProviderError as e:
            return Failed(e.message, retryable=e.retryable, provider=e.provider)
        except AuthError as e:
            return Failed(str(e), retryable=False, provider=provider)
        except Exception as e:
            logger.exception(f"Unexpected error in stage {stage.value}")
            return Failed(f"unexpected error: {e}", retryable=False, provider=provider)

    def _apply(self, stage: Stage, outcome: StageOutcome, result: EnrichmentResult, label: str) -> None:
        if isinstance(outcome, Success):
            changed = result.merge(outcome.fields, refine=outcome.refine)
            if changed:
                logger.debug(f"{label}: {stage.value} set {', '.join(changed)}")
        elif isinstance(outcome, Skipped):
            result.skipped[stage.value] = outcome.reason
        else:
            logger.warning(f"{label}: {stage.value} failed: {outcome.error}")
            result.record_error(
                StageError(
                    stage=stage,
                    message=outcome.error,
                    retryable=outcome.retryable,
                    provider=outcome.provider,
                )
            )

    async def _skip(self, reason: str) -> StageOutcome:
        return Skipped(reason)

    async def _gatekeep(self, proceed: bool, reason: str) -> StageOutcome:
        return Success() if proceed else Skipped(reason)

    async def _normalize(self, lead: LeadRecord) -> StageOutcome:
        names = normalize_name(lead.name)
        first_name = names.first_name
        last_name = names.last_name
        if lead.first_name:
            first_name = normalize_name(lead.first_name).first_name or clean_name_part(lead.first_name)
        if lead.last_name:
            split = normalize_name(lead.last_name)
            last_name = split.last_name or split.first_name or clean_name_part(lead.last_name)

        return Success(
            {
                "first_name": first_name,
                "last_name": last_name,
                "city": normalize_city(lead.city),
                "state": normalize_state(lead.state),
                "postal_code": normalize_postal_code(lead.postal_code),
                "phone": normalize_phone(lead.phone),
                "email": normalize_email(lead.email),
                "address_line1": lead.address,
            }
        )

    async def _postal_code(self, result: EnrichmentResult) -> StageOutcome:
        if result.postal_code:
            return Skipped("postal code already known")
        postal_code = lookup_postal_code(result.city, result.state)
        if not postal_code:
            return Skipped("no local postal code match")
        return Success({"postal_code": postal_code})

    async def _discover_phone(self, result: EnrichmentResult) -> StageOutcome:
        if result.has_phone:
            return Skipped("phone already known")

        name = _full_name(result)
        if not name and not result.email:
            raise ValidationError("no name or email to search by")

        candidates = await call_provider(
            lambda: self.people_search.search(
                name=name,
                citystatezip=_citystatezip(result) if name else None,
                email=None if name else result.email,
            ),
            provider=PEOPLE_SEARCH,
            rate_limiter=self.rate_limiter,
        )
        if not candidates:
            return Success()

        best = candidates[0]
        if not best.phone and best.person_id:
            # Separate billed call, throttled and retried on its own
            best = await call_provider(
                lambda: self.people_search.complete_candidate(candidates[0]),
                provider=PEOPLE_SEARCH,
                rate_limiter=self.rate_limiter,
            )

        logger.debug(f"People search matched, phone {mask_phone(best.phone)}")
        # A matched profile's ZIP beats the table estimate from the previous stage
        return Success(best.as_fields(), refine=("postal_code",))

    async def _line_type(self, result: EnrichmentResult) -> StageOutcome:
        if not result.has_phone:
            return Skipped("no phone")
        phone = result.phone
        intel = await call_provider(
            lambda: self.phone_intel.lookup(phone),
            provider=PHONE_INTEL,
            rate_limiter=self.rate_limiter,
        )
        return Success(
            {
                "line_type": intel.line_type,
                "carrier_name": intel.carrier_name,
                "carrier_type": intel.carrier_type,
            }
        )

    async def _check_dnc(self, result: EnrichmentResult) -> StageOutcome:
        phone = result.phone
        status = await call_provider(
            lambda token: self.dnc.check(phone, token),
            provider=DNC,
            rate_limiter=self.rate_limiter,
            token_cache=self.token_cache,
        )
        return Success({"do_not_call": status.do_not_call, "dnc_reason": status.reason})

    async def _lookup_age(self, result: EnrichmentResult) -> StageOutcome:
        if result.do_not_call:
            return Skipped("do not call")

        name = _full_name(result)
        if not result.person_id and not name:
            raise ValidationError("no person id or name for age lookup")

        info = await call_provider(
            lambda: self.age.lookup_age(
                person_id=result.person_id,
                name=name,
                citystatezip=_citystatezip(result),
            ),
            provider=AGE,
            rate_limiter=self.rate_limiter,
        )
        return Success({"age": info.age, "date_of_birth": info.date_of_birth})


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        limits=httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100
        ),
        http2=True
    )


def build_enricher(
    client: httpx.AsyncClient,
    token_store: Optional[TokenStore] = None,
) -> LeadEnricher:
    """Wire provider clients, rate limiter and token cache from settings."""
    skip_tracing = SkipTracingClient(client)
    token_cache = TokenCache(
        CognitoTokenIssuer(client),
        name="dnc",
        safety_margin=settings.token_safety_margin,
        store=token_store,
    )
    return LeadEnricher(
        people_search=skip_tracing,
        phone_intel=TelnyxClient(client),
        dnc=DncScrubClient(client),
        age=skip_tracing,
        rate_limiter=RateLimiter(delays=settings.provider_delays),
        token_cache=token_cache,
    )


def checkpoint_path_for(output_path: str) -> Path:
    return Path(f"{output_path}.checkpoint.json")


@contextmanager
def cancel_on_interrupt(cancel: asyncio.Event) -> Iterator[asyncio.Event]:
    """Turn the first Ctrl-C into a between-records cancel.

    The lead in flight finishes and is checkpointed. A second Ctrl-C gets the
    default handler back and interrupts immediately.
    """
    loop = asyncio.get_running_loop()

    def interrupt() -> None:
        console.print("\n[yellow]Stopping after the lead in flight (Ctrl-C again to abort)")
        cancel.set()
        loop.remove_signal_handler(signal.SIGINT)

    installed = True
    try:
        loop.add_signal_handler(signal.SIGINT, interrupt)
    except (NotImplementedError, RuntimeError):
        # No signal support on this loop (Windows, or not the main thread)
        installed = False

    try:
        yield cancel
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def enrich_dataframe(
    df: pl.DataFrame,
    output_path: str,
    flush_every: Optional[int] = None,
    resume: bool = False,
    cancel: Optional[asyncio.Event] = None,
) -> pl.DataFrame:
    """
    Enrich a DataFrame of leads.

    Args:
        df: Input DataFrame with lead data
        output_path: Path to save enriched results (.csv or .parquet)
        flush_every: Save checkpoint every N leads
        resume: Continue from the checkpoint of a previous run
        cancel: Set to stop after the lead in flight; Ctrl-C sets it too

    Returns:
        Enriched DataFrame
    """
    missing = settings.missing_credentials()
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    flush_every = flush_every or settings.flush_every
    leads: List[LeadRecord] = [LeadRecord.from_row(row) for row in df.to_dicts()]
    store = JsonCheckpointStore(checkpoint_path_for(output_path))

    completed: List[EnrichmentResult] = store.load() if resume else []
    if completed:
        console.print(f"[blue]Resuming after {len(completed)} already enriched leads")

    console.print(f"[blue]Starting enrichment of {len(leads)} leads...")
    console.print(f"[blue]Checkpoints every: {flush_every}")

    if cancel is None:
        cancel = asyncio.Event()
    async with create_http_client() as client:
        runner = BatchRunner(build_enricher(client, TokenStore()), store, flush_every=flush_every)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.1f}%"),
            TimeRemainingColumn(),
            console=console,
        ) as progress:

            task = progress.add_task("Enriching leads...", total=len(leads), completed=len(completed))

            def on_progress(event: ProgressEvent) -> None:
                progress.update(task, description=f"{event.lead}: {event.stage.value}")

            def on_record(index: int, result: EnrichmentResult) -> None:
                progress.update(task, advance=1)

            with cancel_on_interrupt(cancel):
                results = await runner.run_batch(
                    leads,
                    on_progress=on_progress,
                    on_record=on_record,
                    cancel=cancel,
                    completed=completed,
                )

    runner.progress.final_report()

    final_df = save_results(results, output_path, source=df)
    if len(results) < len(leads):
        console.print(f"[yellow]Stopped after {len(results)}/{len(leads)} leads, partial results saved to {output_path}")
        console.print(f"[yellow]Checkpoint kept at {store.path}, run again with --resume to continue")
    else:
        console.print(f"[green]Enrichment complete! Results saved to {output_path}")
    return final_df


def enrich_batch(
    df: pl.DataFrame,
    out_path: str = "enriched.csv",
    flush_every: Optional[int] = None,
    resume: bool = False,
) -> pl.DataFrame:
    """Synchronous wrapper for DataFrame enrichment."""
    return asyncio.run(enrich_dataframe(df, out_path, flush_every, resume))
