from unittest.mock import patch

import structlog

from core.logging import BusinessEvents
from tests.conftest import TRANSMISSION_HEADERS, make_event, to_body


class _TestLogger:
    def __init__(self):
        self.output = []

    def __call__(self, logger, method_name, event_dict):
        """Process log events and store them for test assertions"""
        self.output.append(event_dict.copy())
        return event_dict


def configure_test_logger(cache=True):
    test_logger = _TestLogger()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            test_logger,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=cache,
    )
    return test_logger


def test_structlog_json():
    test_logger = configure_test_logger()

    log = structlog.get_logger("test")
    log.bind(foo="bar").info("hello world")

    assert len(test_logger.output) > 0
    log_dict = test_logger.output[-1]

    assert log_dict["foo"] == "bar"
    assert log_dict["event"] == "hello world"
    assert "timestamp" in log_dict
    assert log_dict["level"] == "info"


def test_webhook_log_format():
    test_logger = configure_test_logger()

    log = structlog.get_logger("test.payments")
    log.bind(
        event_id="WH-1", resource_type="capture", resource_status="completed"
    ).info(BusinessEvents.WEBHOOK_APPLIED, transition="capture.completed")

    log_dict = test_logger.output[-1]

    assert log_dict["event_id"] == "WH-1"
    assert log_dict["resource_type"] == "capture"
    assert log_dict["transition"] == "capture.completed"
    assert log_dict["event"] == "webhook.applied"
    assert log_dict["level"] == "info"


def test_api_request_logging(client, paypal):
    """API requests are logged with structured request data."""
    structlog.reset_defaults()
    test_logger = configure_test_logger(cache=False)

    response = client.get("/healthz", headers=TRANSMISSION_HEADERS)
    assert response.status_code == 200

    api_logs = [
        log for log in test_logger.output if log.get("event") == BusinessEvents.API_ENTRY
    ]
    assert len(api_logs) > 0

    log_entry = api_logs[0]
    assert log_entry["method"] == "GET"
    assert log_entry["path"] == "/healthz"
    assert log_entry["status_code"] == 200
    assert log_entry["transmission_id"] == TRANSMISSION_HEADERS["PAYPAL-TRANSMISSION-ID"]
    assert "duration_ms" in log_entry
    assert "timestamp" in log_entry


def test_webhook_outcome_is_logged(client, paypal, make_order):
    order = make_order(total="49.99")
    body = to_body(make_event(custom_id=str(order.order_guid)))

    with patch("payments.webhook_handler.log") as mock_log:
        response = client.post(
            "/payments/webhookhandler", content=body, headers=TRANSMISSION_HEADERS
        )

    assert response.status_code == 200
    mock_log.bind.assert_called_once_with(
        event_id="WH-58D329510W468432D-8HN650336L201105X",
        resource_type="capture",
        resource_status="completed",
        resource_id="2GG279541U471931P",
    )
    bound = mock_log.bind.return_value
    events = [c.args[0] for c in bound.info.call_args_list]
    assert events == [BusinessEvents.WEBHOOK_RECEIVED, BusinessEvents.WEBHOOK_APPLIED]
    assert bound.info.call_args.kwargs["transition"] == "capture.completed"


def test_malformed_webhook_logs_raw_payload(client, paypal):
    with patch("payments.webhook_handler.log") as mock_log:
        client.post("/payments/webhookhandler", content=b"{oops", headers=TRANSMISSION_HEADERS)

    mock_log.error.assert_called_once()
    args, kwargs = mock_log.error.call_args
    assert args[0] == BusinessEvents.WEBHOOK_MALFORMED
    assert kwargs["raw_payload"] == "{oops"
