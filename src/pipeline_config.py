"""
pipeline_config.py

External parameters for the API-facing steps: credentials, daily quota,
pacing, time zone, HTTP retry policy. Shared argparse wiring for the scripts.
"""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import find_dotenv, load_dotenv


API_KEY_ENV = "GOOGLE_MAPS_API_KEY"

DEFAULT_DAILY_QUOTA = 2500  # Distance Matrix elements/day on the free tier
DEFAULT_DELAY_S = 2.0
DEFAULT_TIME_ZONE = "America/Denver"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_S = 1.0

DEFAULT_WORK_DIR = Path("data/processed")


@dataclass(frozen=True)
class PipelineConfig:
    api_key: Optional[str] = None
    batch_size: int = DEFAULT_DAILY_QUOTA
    delay_s: float = DEFAULT_DELAY_S
    time_zone: str = DEFAULT_TIME_ZONE
    timeout_s: float = DEFAULT_TIMEOUT_S
    retries: int = DEFAULT_RETRIES
    backoff_s: float = DEFAULT_BACKOFF_S


# -----------------------------
# INPUT VALIDATION
# -----------------------------
def validate_batch_size(batch_size: int) -> None:
    """
    Raises:
        ValueError: batch size is not a positive integer.
    """
    if int(batch_size) <= 0:
        raise ValueError(
            f"Batch size must be > 0: {batch_size}\n"
            f"It should match the distance API's daily quota (default {DEFAULT_DAILY_QUOTA})."
        )


def validate_delay(delay_s: float) -> None:
    if float(delay_s) < 0:
        raise ValueError(f"Delay between API calls must be >= 0 seconds: {delay_s}")


def validate_time_zone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(
            f"Unknown time zone: '{name}'\n"
            f"Use an IANA name such as {DEFAULT_TIME_ZONE}."
        ) from e


def validate_retries(retries: int) -> None:
    if int(retries) < 1:
        raise ValueError(f"Retries (total attempts per request) must be >= 1: {retries}")


def validate_config(cfg: PipelineConfig, require_api_key: bool = False) -> None:
    """
    Validate all parameters in one call.

    Raises:
        ValueError: If any validation fails.
    """
    validate_batch_size(cfg.batch_size)
    validate_delay(cfg.delay_s)
    validate_time_zone(cfg.time_zone)
    validate_retries(cfg.retries)
    if require_api_key and not cfg.api_key:
        raise ValueError(
            f"No API key. Pass --api-key or set {API_KEY_ENV} (a .env file in the working directory works too)."
        )


# -----------------------------
# argparse wiring
# -----------------------------
def add_api_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--api-key", default=None, help=f"Google Maps API key (default: ${API_KEY_ENV})")
    ap.add_argument("--delay", type=float, default=DEFAULT_DELAY_S,
                    help=f"Seconds between consecutive API calls (default: {DEFAULT_DELAY_S})")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, help="HTTP timeout in seconds")
    ap.add_argument("--retries", type=int, default=DEFAULT_RETRIES,
                    help="Attempts per request on network errors (default: 3)")
    ap.add_argument("--backoff", type=float, default=DEFAULT_BACKOFF_S,
                    help="Base backoff in seconds, doubled per retry (default: 1.0)")


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    load_dotenv(find_dotenv(usecwd=True))
    return PipelineConfig(
        api_key=getattr(args, "api_key", None) or os.getenv(API_KEY_ENV),
        batch_size=getattr(args, "batch_size", DEFAULT_DAILY_QUOTA),
        delay_s=getattr(args, "delay", DEFAULT_DELAY_S),
        time_zone=getattr(args, "time_zone", DEFAULT_TIME_ZONE),
        timeout_s=getattr(args, "timeout", DEFAULT_TIMEOUT_S),
        retries=getattr(args, "retries", DEFAULT_RETRIES),
        backoff_s=getattr(args, "backoff", DEFAULT_BACKOFF_S),
    )
