from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Union
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
import logging

from safety_net.core.config import Settings, get_settings, validate_settings
from safety_net.schemas.check import CheckResponse, NoCandidatesResponse
from safety_net.services.clients import Collaborators, build_mailer, build_storage
from safety_net.services.missed_dose import run_missed_dose_check
from safety_net.utils.security import verify_cron_secret

router = APIRouter()


def get_collaborators(cfg: Settings = Depends(get_settings)) -> Iterator[Collaborators]:
    """Validate configuration, then build the storage and mail clients for one invocation."""
    validate_settings(cfg)
    collaborators = Collaborators(storage=build_storage(cfg), mailer=build_mailer(cfg))
    try:
        yield collaborators
    finally:
        collaborators.close()


def get_clock() -> Callable[[], datetime]:
    return lambda: datetime.now(timezone.utc)


@router.api_route(
    "/check-missed",
    methods=["GET", "POST"],
    response_model=Union[CheckResponse, NoCandidatesResponse],
    dependencies=[Depends(verify_cron_secret)],
)
def check_missed(
    collaborators: Collaborators = Depends(get_collaborators),
    cfg: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    result = run_missed_dose_check(
        collaborators.storage,
        collaborators.mailer,
        tz=ZoneInfo(cfg.ALERT_TIMEZONE),
        lookback_low=timedelta(minutes=cfg.LOOKBACK_LOW_MINUTES),
        lookback_high=timedelta(minutes=cfg.LOOKBACK_HIGH_MINUTES),
        mail_from=cfg.MAIL_FROM,
        now=clock(),
        claims_enabled=cfg.ALERT_CLAIMS_ENABLED,
        audit_log=cfg.ALERT_AUDIT_LOG,
    )
    if result.no_candidates:
        return NoCandidatesResponse()

    reports = result.reports
    logging.info(f"Check complete: {len(reports)} alert(s) sent for {result.candidates} schedule(s)")
    return CheckResponse(message="Check complete", reportsCount=len(reports), reports=reports)
