"""
Unit tests for the Lambda handler module.

Tests request parsing, per-source result aggregation into status codes,
and the API Gateway response helpers.
"""

import json

import pytest
from unittest.mock import Mock, patch

from src.config.models import ScraperSettings, SystemConfig
from src.config.sources import SINA_NEWS, TENCENT_NEWS, THE_PAPER
from src.config.validation import ValidationError
from src.handler import (
    HandlerError,
    create_api_response,
    create_error_response,
    lambda_handler,
    parse_request,
    run_sources,
)
from src.scraper.scraper import RunState, ScrapingResult


def make_config(**settings):
    return SystemConfig(
        sources={profile.source_id: profile for profile in (SINA_NEWS, TENCENT_NEWS, THE_PAPER)},
        settings=ScraperSettings(**settings)
    )


def source_result(source_id, success=True):
    return ScrapingResult(
        success=success,
        articles_found=3,
        articles_processed=2 if success else 0,
        errors=[],
        source=source_id
    ).to_dict()


def context():
    ctx = Mock()
    ctx.aws_request_id = "test-request-id"
    return ctx


class TestParseRequest:
    """Test cases for request payload parsing."""

    def test_defaults_to_every_source_in_priority_order(self):
        """An empty payload scrapes all configured sources."""
        request = parse_request({}, make_config())

        assert request["sources"] == ["tencent-news", "sina-news", "the-paper"]
        assert request["max_articles"] == 5
        assert request["deadline_seconds"] is None

    def test_direct_invocation_payload(self):
        """Scheduled events carry the payload at the top level."""
        request = parse_request(
            {"sources": ["the-paper", "Sina-News", "sina-news"], "max_articles": 3, "deadline_seconds": 60},
            make_config()
        )

        assert request["sources"] == ["sina-news", "the-paper"]
        assert request["max_articles"] == 3
        assert request["deadline_seconds"] == 60.0

    def test_api_gateway_string_body(self):
        """API Gateway events carry a JSON string body."""
        event = {"body": json.dumps({"sources": "tencent-news"})}

        assert parse_request(event, make_config())["sources"] == ["tencent-news"]

    def test_api_gateway_empty_body(self):
        """An empty body means the defaults."""
        assert parse_request({"body": ""}, make_config())["sources"] == ["tencent-news", "sina-news", "the-paper"]

    def test_settings_supply_defaults(self):
        """Configured run settings apply when the payload is silent."""
        request = parse_request({}, make_config(max_articles_per_run=8, run_deadline_seconds=120))

        assert request["max_articles"] == 8
        assert request["deadline_seconds"] == 120

    @pytest.mark.parametrize("event,message", [
        ({"body": "{invalid"}, "Invalid JSON"),
        ({"body": json.dumps([1, 2])}, "JSON object"),
        ({"sources": ["nowhere"]}, "Unknown source"),
        ({"sources": []}, "No sources"),
        ({"sources": [1]}, "list of source identifiers"),
        ({"max_articles": 0}, "max_articles"),
        ({"max_articles": "many"}, "max_articles"),
        ({"max_articles": True}, "max_articles"),
        ({"deadline_seconds": -5}, "deadline_seconds"),
    ])
    def test_invalid_payloads(self, event, message):
        """Malformed payloads are rejected with a validation error."""
        with pytest.raises(HandlerError) as exc_info:
            parse_request(event, make_config())

        assert message in str(exc_info.value)
        assert exc_info.value.error_type == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400


class TestLambdaHandler:
    """Test cases for the Lambda entry point."""

    @patch('src.handler.run_sources')
    @patch('src.handler.get_system_config')
    def test_all_sources_succeed(self, mock_config, mock_run):
        """Every source succeeding yields 200."""
        mock_config.return_value = make_config()
        mock_run.return_value = {"sina-news": source_result("sina-news")}

        response = lambda_handler({"sources": ["sina-news"]}, context())

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["success"] is True
        assert body["results"]["sina-news"]["articles_processed"] == 2
        assert "processing_time_ms" in body

        _, request = mock_run.call_args[0]
        assert request["sources"] == ["sina-news"]

    @patch('src.handler.run_sources')
    @patch('src.handler.get_system_config')
    def test_partial_success(self, mock_config, mock_run):
        """Some sources failing yields 206 with every result reported."""
        mock_config.return_value = make_config()
        mock_run.return_value = {
            "tencent-news": source_result("tencent-news"),
            "sina-news": source_result("sina-news", success=False),
        }

        response = lambda_handler({}, context())

        assert response["statusCode"] == 206
        body = json.loads(response["body"])
        assert body["success"] is True
        assert body["results"]["sina-news"]["success"] is False

    @patch('src.handler.run_sources')
    @patch('src.handler.get_system_config')
    def test_all_sources_fail(self, mock_config, mock_run):
        """No source succeeding yields 502."""
        mock_config.return_value = make_config()
        mock_run.return_value = {"sina-news": source_result("sina-news", success=False)}

        response = lambda_handler({"sources": "sina-news"}, context())

        assert response["statusCode"] == 502
        assert json.loads(response["body"])["success"] is False

    @patch('src.handler.get_system_config')
    def test_validation_error_response(self, mock_config):
        """Bad payloads return 400 without scraping."""
        mock_config.return_value = make_config()

        response = lambda_handler({"sources": ["nowhere"]}, context())

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert body["error"]["type"] == "VALIDATION_ERROR"
        assert body["error"]["retry_recommended"] is False

    @patch('src.handler.get_system_config')
    def test_configuration_failure(self, mock_config):
        """A configuration that cannot load returns 500."""
        mock_config.side_effect = RuntimeError("broken config")

        response = lambda_handler({}, context())

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body["error"]["type"] == "CONFIGURATION_ERROR"
        assert "broken config" in body["error"]["message"]

    @patch('src.handler.run_sources')
    @patch('src.handler.get_system_config')
    def test_unexpected_error(self, mock_config, mock_run):
        """Unexpected failures return 500 with a retry hint."""
        mock_config.return_value = make_config()
        mock_run.side_effect = RuntimeError("boom")

        response = lambda_handler({}, context())

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body["error"]["type"] == "INTERNAL_ERROR"
        assert body["error"]["retry_recommended"] is True


class TestRunSources:
    """Test cases for running several sources."""

    @patch('src.handler.ScrapeOrchestrator')
    def test_sources_share_pacing_and_run_in_order(self, mock_orchestrator_class):
        """One orchestrator per source, all sharing one pacing controller."""
        runs = []

        def build(**kwargs):
            orchestrator = Mock()
            orchestrator.run.side_effect = lambda profile: runs.append(profile.source_id) or ScrapingResult(
                success=True, articles_found=1, articles_processed=1, errors=[], source=profile.source_id
            )
            return orchestrator

        mock_orchestrator_class.side_effect = build
        request = {"sources": ["tencent-news", "sina-news"], "max_articles": 2, "deadline_seconds": None}

        results = run_sources(make_config(), request)

        assert runs == ["tencent-news", "sina-news"]
        assert list(results) == ["tencent-news", "sina-news"]
        pacings = {id(call.kwargs["pacing"]) for call in mock_orchestrator_class.call_args_list}
        assert len(pacings) == 1
        assert all(call.kwargs["max_articles"] == 2 for call in mock_orchestrator_class.call_args_list)

    @patch('src.handler.ScrapeOrchestrator')
    def test_rejected_profile_is_reported(self, mock_orchestrator_class):
        """A profile failing validation becomes an aborted result."""
        mock_orchestrator_class.return_value.run.side_effect = ValidationError("user_agents", "At least one user agent is required")
        request = {"sources": ["sina-news"], "max_articles": 2, "deadline_seconds": None}

        result = run_sources(make_config(), request)["sina-news"]

        assert result["success"] is False
        assert result["state"] == RunState.ABORTED.value
        assert result["errors"][0]["type"] == "UNKNOWN"
        assert "user_agents" in result["errors"][0]["message"]


class TestResponseHelpers:
    """Test cases for response formatting."""

    def test_create_error_response(self):
        """Error responses carry type, message and details."""
        response = create_error_response("Something went wrong", "TEST_ERROR", {"key": "value"})

        assert response["success"] is False
        assert response["error"]["type"] == "TEST_ERROR"
        assert response["error"]["message"] == "Something went wrong"
        assert response["error"]["details"] == {"key": "value"}
        assert response["error"]["retry_recommended"] is True
        assert "timestamp" in response

    def test_create_api_response(self):
        """Responses are API Gateway shaped with CORS headers."""
        response = create_api_response(200, {"title": "北京新闻"})

        assert response["statusCode"] == 200
        assert response["headers"]["Content-Type"] == "application/json"
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"
        assert "北京新闻" in response["body"]

    def test_handler_error_defaults(self):
        """HandlerError defaults to a 500 handler error."""
        error = HandlerError("Test error")

        assert str(error) == "Test error"
        assert error.error_type == "HANDLER_ERROR"
        assert error.status_code == 500
