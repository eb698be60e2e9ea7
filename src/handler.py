"""
AWS Lambda handler for the expat news scraper.

This module provides the main entry point for the Lambda function,
handling direct and API Gateway events and running one scrape per
requested news source.
"""

import json
import time
from typing import Dict, Any, Optional
from datetime import datetime

from .config.manager import get_system_config
from .config.logging import configure_logging, get_logger
from .config.models import SystemConfig
from .config.sources import order_by_priority
from .config.validation import ConfigurationError
from .scraper.discovery import LinkDiscoverer
from .scraper.errors import ErrorKind
from .scraper.fetcher import HTTPFetcher
from .scraper.pacing import PacingController
from .scraper.scraper import RunState, ScrapeOrchestrator, ScrapingErrorRecord, ScrapingResult


# Configure structured logging
logger = get_logger(__name__)


class HandlerError(Exception):
    """Custom exception for handler-level errors."""

    def __init__(self, message: str, error_type: str = "HANDLER_ERROR", status_code: int = 500):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler for scheduled and API Gateway invocations.

    Scrapes each requested source in priority order. A source whose run
    fails is reported next to the others rather than failing the request.

    Args:
        event: Direct invocation payload or API Gateway event
        context: Lambda runtime context

    Returns:
        API Gateway response format with status code and body
    """
    start_time = datetime.now()
    request_id = getattr(context, 'aws_request_id', f"req_{int(time.time())}")
    logger.set_context(request_id=request_id)

    with logger.timed_operation("lambda_handler"):
        try:
            try:
                config = get_system_config()
            except Exception as e:
                logger.error("Failed to load system configuration", error=e)
                raise HandlerError(f"Configuration error: {str(e)}", "CONFIGURATION_ERROR", 500)

            configure_logging(config.settings.log_level, config.settings.enable_structured_logging)

            request = parse_request(event, config)
            logger.info(
                "Processing request",
                sources=request["sources"],
                max_articles=request["max_articles"],
                deadline_seconds=request["deadline_seconds"]
            )

            results = run_sources(config, request)

            processing_time = int((datetime.now() - start_time).total_seconds() * 1000)
            succeeded = sum(1 for result in results.values() if result["success"])

            if succeeded == len(results):
                status_code = 200
            elif succeeded > 0:
                status_code = 206
            else:
                status_code = 502

            logger.log_metrics({
                "total_processing_time_ms": processing_time,
                "sources_requested": len(results),
                "sources_succeeded": succeeded,
                "articles_processed": sum(result["articles_processed"] for result in results.values())
            }, "lambda_execution")

            body = {
                "success": succeeded > 0,
                "results": results,
                "processing_time_ms": processing_time,
                "timestamp": datetime.now().isoformat()
            }
            return create_api_response(status_code, body)

        except HandlerError as e:
            processing_time = int((datetime.now() - start_time).total_seconds() * 1000)
            logger.error("Handler error occurred", error=e, processing_time_ms=processing_time)

            error_response = create_error_response(str(e), e.error_type)
            error_response["processing_time_ms"] = processing_time
            return create_api_response(e.status_code, error_response)

        except Exception as e:
            processing_time = int((datetime.now() - start_time).total_seconds() * 1000)
            logger.error("Unexpected error in Lambda handler", error=e, processing_time_ms=processing_time)

            error_response = create_error_response(f"Internal server error: {str(e)}", "INTERNAL_ERROR")
            error_response["processing_time_ms"] = processing_time
            return create_api_response(500, error_response)


def parse_request(event: Dict[str, Any], config: SystemConfig) -> Dict[str, Any]:
    """
    Parse and validate the invocation payload.

    Args:
        event: Raw event, either the payload itself or an API Gateway event
        config: Loaded system configuration

    Returns:
        Dictionary with ``sources`` in priority order, ``max_articles`` and
        ``deadline_seconds``

    Raises:
        HandlerError: If the payload is malformed or names an unknown source
    """
    try:
        if "body" in event:
            body = event["body"]
            if isinstance(body, str):
                body = json.loads(body) if body.strip() else {}
        else:
            body = event
    except json.JSONDecodeError as e:
        raise HandlerError(f"Invalid JSON in request body: {str(e)}", "VALIDATION_ERROR", 400)

    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise HandlerError("Request body must be a JSON object", "VALIDATION_ERROR", 400)

    sources = body.get("sources")
    if sources is None:
        sources = list(config.sources)
    elif isinstance(sources, str):
        sources = [sources]
    elif not isinstance(sources, list) or not all(isinstance(item, str) for item in sources):
        raise HandlerError("'sources' must be a list of source identifiers", "VALIDATION_ERROR", 400)

    sources = [item.strip().lower() for item in sources if item.strip()]
    unknown = [item for item in sources if item not in config.sources]
    if unknown:
        raise HandlerError(f"Unknown source(s): {', '.join(unknown)}", "VALIDATION_ERROR", 400)
    if not sources:
        raise HandlerError("No sources to scrape", "VALIDATION_ERROR", 400)

    max_articles = _positive_number(body, "max_articles", int, config.settings.max_articles_per_run)
    deadline_seconds = _positive_number(body, "deadline_seconds", float, config.settings.run_deadline_seconds)

    return {
        "sources": order_by_priority(list(dict.fromkeys(sources))),
        "max_articles": max_articles,
        "deadline_seconds": deadline_seconds
    }


def _positive_number(body: Dict[str, Any], key: str, cast, default):
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise HandlerError(f"'{key}' must be a positive number", "VALIDATION_ERROR", 400)
    try:
        value = cast(value)
    except (TypeError, ValueError):
        raise HandlerError(f"'{key}' must be a positive number", "VALIDATION_ERROR", 400)
    if value <= 0:
        raise HandlerError(f"'{key}' must be a positive number", "VALIDATION_ERROR", 400)
    return value


def run_sources(config: SystemConfig, request: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Scrape every requested source with a shared fetcher and pacing controller.

    Args:
        config: Loaded system configuration
        request: Parsed request from ``parse_request``

    Returns:
        Mapping of source identifier to ``ScrapingResult.to_dict()``
    """
    profiles = [config.sources[source_id] for source_id in request["sources"]]
    pool_size = max(profile.pacing.max_concurrent_requests for profile in profiles)
    pacing = PacingController()
    results: Dict[str, Dict[str, Any]] = {}

    with HTTPFetcher(pool_size=pool_size) as fetcher:
        for profile in profiles:
            logger.set_context(source_id=profile.source_id)
            orchestrator = ScrapeOrchestrator(
                fetch=fetcher.fetch,
                discover=LinkDiscoverer(fetcher, profile, pacing=pacing),
                pacing=pacing,
                max_articles=request["max_articles"],
                run_deadline_seconds=request["deadline_seconds"]
            )

            try:
                result = orchestrator.run(profile)
            except ConfigurationError as e:
                logger.error("Source configuration rejected", error=e, source_id=profile.source_id)
                results[profile.source_id] = _configuration_failure(profile.source_id, e).to_dict()
                continue

            logger.info(
                "Source scraped",
                source_id=profile.source_id,
                success=result.success,
                articles_processed=result.articles_processed,
                error_count=len(result.errors)
            )
            results[profile.source_id] = result.to_dict()

    logger.set_context(source_id=None)
    return results


def _configuration_failure(source_id: str, error: ConfigurationError) -> ScrapingResult:
    return ScrapingResult(
        success=False,
        articles_found=0,
        articles_processed=0,
        errors=[ScrapingErrorRecord(ErrorKind.UNKNOWN, str(error))],
        source=source_id,
        state=RunState.ABORTED
    )


def create_error_response(
    error_message: str,
    error_type: str = "PROCESSING_ERROR",
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Create structured error response.

    Args:
        error_message: Error description
        error_type: Type of error
        details: Any additional error context

    Returns:
        Structured error response dictionary
    """
    return {
        "success": False,
        "error": {
            "type": error_type,
            "message": error_message,
            "details": details or {},
            "retry_recommended": error_type not in ("VALIDATION_ERROR", "CONFIGURATION_ERROR")
        },
        "timestamp": datetime.now().isoformat()
    }


def create_api_response(status_code: int, body: Any) -> Dict[str, Any]:
    """
    Create API Gateway response format.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)

    Returns:
        API Gateway response format
    """
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token",
            "Access-Control-Allow-Methods": "POST,OPTIONS"
        },
        "body": json.dumps(body, default=str, ensure_ascii=False)
    }
