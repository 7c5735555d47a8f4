"""Unit tests for Shophook models."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from shophook.exceptions import InvalidTransitionError, SerializationError
from shophook.models import (
    ALL_EVENT_TYPES,
    FAILURE_THRESHOLD,
    AttemptLog,
    AttemptStatus,
    DeliveryOutcome,
    EndpointConfig,
    EndpointCreate,
    EndpointUpdate,
    EventEnvelope,
    EventType,
    list_event_types,
    resolve_outcome,
    retry_delay,
    transition,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def make_endpoint(**overrides) -> EndpointConfig:
    fields = {
        "tenant_id": "shop_1",
        "name": "ERP",
        "url": "https://erp.example.com/hook",
        "events": {EventType.OS_CRIADA},
    }
    fields.update(overrides)
    return EndpointConfig(**fields)


def make_log(**overrides) -> AttemptLog:
    fields = {
        "endpoint_id": "whk_1",
        "tenant_id": "shop_1",
        "event_type": EventType.OS_CRIADA,
        "url": "https://erp.example.com/hook",
        "payload": '{"evento":"OS_CRIADA"}',
    }
    fields.update(overrides)
    return AttemptLog(**fields)


def failed(status: int | None = 500) -> DeliveryOutcome:
    return DeliveryOutcome(http_status=status, error=f"HTTP {status}", latency_ms=12)


def ok(status: int = 200) -> DeliveryOutcome:
    return DeliveryOutcome(http_status=status, response_body="ok", latency_ms=8)


class TestEventType:
    """Tests for the event catalogue."""

    def test_catalogue_has_sixteen_events(self):
        """Every domain event of the catalogue should be present."""
        assert len(ALL_EVENT_TYPES) == 16
        assert EventType("PAGAMENTO_RECEBIDO") is EventType.PAGAMENTO_RECEBIDO

    def test_display_name_and_description(self):
        """Each event should carry a display name and a description."""
        assert EventType.OS_CRIADA.display_name == "OS Criada"
        for event in EventType:
            assert event.display_name
            assert event.description

    def test_list_event_types(self):
        """list_event_types should describe every event."""
        described = list_event_types()
        assert len(described) == len(ALL_EVENT_TYPES)
        assert described[0] == {
            "code": "OS_CRIADA",
            "name": "OS Criada",
            "description": EventType.OS_CRIADA.description,
        }

    def test_unknown_code_rejected(self):
        with pytest.raises(ValueError):
            EventType("ORDER_SHIPPED")


class TestEndpointConfig:
    """Tests for EndpointConfig model."""

    def test_defaults(self):
        """New endpoints should be active with the default policy."""
        endpoint = make_endpoint()
        assert endpoint.id.startswith("whk_")
        assert endpoint.active is True
        assert endpoint.consecutive_failures == 0
        assert endpoint.max_attempts == 3
        assert endpoint.timeout_seconds == 30
        assert endpoint.has_secret is False

    @pytest.mark.parametrize("url", ["ftp://erp.example.com/hook", "not a url", "/relative/path"])
    def test_rejects_non_http_urls(self, url: str):
        """Only absolute http(s) URLs are accepted."""
        with pytest.raises(ValidationError):
            make_endpoint(url=url)

    def test_url_kept_verbatim(self):
        """The URL should be stored exactly as given."""
        endpoint = make_endpoint(url="http://localhost:8080/hook?x=1")
        assert endpoint.url == "http://localhost:8080/hook?x=1"

    def test_policy_bounds(self):
        with pytest.raises(ValidationError):
            make_endpoint(max_attempts=0)
        with pytest.raises(ValidationError):
            make_endpoint(max_attempts=11)
        with pytest.raises(ValidationError):
            make_endpoint(timeout_seconds=121)

    def test_blank_secret_does_not_sign(self):
        assert make_endpoint(secret="   ").has_secret is False
        assert make_endpoint(secret="s3cr3t").has_secret is True

    def test_subscribes_to(self):
        """Only active endpoints subscribed to the event should match."""
        endpoint = make_endpoint(events={EventType.OS_CRIADA, EventType.ESTOQUE_BAIXO})
        assert endpoint.subscribes_to(EventType.ESTOQUE_BAIXO)
        assert not endpoint.subscribes_to(EventType.CLIENTE_CRIADO)

        endpoint.active = False
        assert not endpoint.subscribes_to(EventType.OS_CRIADA)

    def test_empty_events_never_triggered(self):
        endpoint = make_endpoint(events=set())
        assert not any(endpoint.subscribes_to(event) for event in EventType)

    def test_view_hides_secret(self):
        """to_view should expose has_secret but never the secret."""
        view = make_endpoint(secret="s3cr3t").to_view()
        assert view.has_secret is True
        assert "secret" not in view.model_dump()
        assert "s3cr3t" not in view.model_dump_json()


class TestCircuitBreaker:
    """Tests for endpoint health tracking."""

    def test_threshold_is_ten(self):
        assert FAILURE_THRESHOLD == 10

    def test_disables_on_tenth_failure(self):
        """The 10th consecutive failure should disable the endpoint once."""
        endpoint = make_endpoint()

        results = [endpoint.register_failure(NOW) for _ in range(9)]
        assert results == [False] * 9
        assert endpoint.active is True

        assert endpoint.register_failure(NOW) is True
        assert endpoint.active is False
        assert endpoint.consecutive_failures == 10
        assert endpoint.last_failure_at == NOW

        # Further failures keep counting but do not report a new trip
        assert endpoint.register_failure(NOW) is False
        assert endpoint.consecutive_failures == 11

    def test_success_resets_counter(self):
        """9 failures, a success, then 9 more failures leave it active."""
        endpoint = make_endpoint()
        for _ in range(9):
            endpoint.register_failure()
        endpoint.register_success(NOW)

        assert endpoint.consecutive_failures == 0
        assert endpoint.last_success_at == NOW

        for _ in range(9):
            endpoint.register_failure()
        assert endpoint.active is True
        assert endpoint.consecutive_failures == 9

    def test_success_does_not_reactivate(self):
        """A success after disablement should not turn the endpoint back on."""
        endpoint = make_endpoint()
        for _ in range(10):
            endpoint.register_failure()

        endpoint.register_success()

        assert endpoint.active is False
        assert endpoint.consecutive_failures == 0

    def test_reactivate(self):
        endpoint = make_endpoint()
        for _ in range(10):
            endpoint.register_failure()

        endpoint.reactivate()

        assert endpoint.active is True
        assert endpoint.consecutive_failures == 0


class TestStateMachine:
    """Tests for attempt status transitions."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (AttemptStatus.PENDING, AttemptStatus.SUCCESS),
            (AttemptStatus.PENDING, AttemptStatus.FAILURE),
            (AttemptStatus.PENDING, AttemptStatus.ATTEMPTS_EXHAUSTED),
            (AttemptStatus.FAILURE, AttemptStatus.RETRY_SCHEDULED),
            (AttemptStatus.FAILURE, AttemptStatus.ATTEMPTS_EXHAUSTED),
            (AttemptStatus.RETRY_SCHEDULED, AttemptStatus.SUCCESS),
            (AttemptStatus.RETRY_SCHEDULED, AttemptStatus.FAILURE),
            (AttemptStatus.RETRY_SCHEDULED, AttemptStatus.ATTEMPTS_EXHAUSTED),
        ],
    )
    def test_allowed_transitions(self, current: AttemptStatus, target: AttemptStatus):
        assert transition(current, target) is target

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (AttemptStatus.SUCCESS, AttemptStatus.FAILURE),
            (AttemptStatus.SUCCESS, AttemptStatus.RETRY_SCHEDULED),
            (AttemptStatus.ATTEMPTS_EXHAUSTED, AttemptStatus.SUCCESS),
            (AttemptStatus.ATTEMPTS_EXHAUSTED, AttemptStatus.RETRY_SCHEDULED),
            (AttemptStatus.PENDING, AttemptStatus.RETRY_SCHEDULED),
            (AttemptStatus.FAILURE, AttemptStatus.SUCCESS),
        ],
    )
    def test_forbidden_transitions(self, current: AttemptStatus, target: AttemptStatus):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value

    def test_terminal_states(self):
        assert AttemptStatus.SUCCESS.is_terminal
        assert AttemptStatus.ATTEMPTS_EXHAUSTED.is_terminal
        assert not AttemptStatus.PENDING.is_terminal
        assert not AttemptStatus.FAILURE.is_terminal
        assert not AttemptStatus.RETRY_SCHEDULED.is_terminal

    def test_resolve_success(self):
        assert resolve_outcome(AttemptStatus.PENDING, True, 1, 3) == [AttemptStatus.SUCCESS]

    def test_resolve_failure_with_budget_left(self):
        assert resolve_outcome(AttemptStatus.PENDING, False, 1, 3) == [
            AttemptStatus.FAILURE,
            AttemptStatus.RETRY_SCHEDULED,
        ]

    def test_resolve_failure_on_last_attempt(self):
        assert resolve_outcome(AttemptStatus.RETRY_SCHEDULED, False, 3, 3) == [
            AttemptStatus.FAILURE,
            AttemptStatus.ATTEMPTS_EXHAUSTED,
        ]

    def test_single_attempt_budget_exhausts_immediately(self):
        assert resolve_outcome(AttemptStatus.PENDING, False, 1, 1)[-1] is (
            AttemptStatus.ATTEMPTS_EXHAUSTED
        )

    def test_resolve_from_terminal_raises(self):
        with pytest.raises(InvalidTransitionError):
            resolve_outcome(AttemptStatus.SUCCESS, False, 2, 3)


class TestRetryDelay:
    """Tests for the backoff schedule."""

    def test_schedule(self):
        """Delays should follow 1, 5, 15, 30, then 60 minutes forever."""
        delays = [retry_delay(n) for n in range(1, 9)]
        assert delays == [
            timedelta(minutes=1),
            timedelta(minutes=5),
            timedelta(minutes=15),
            timedelta(minutes=30),
            timedelta(minutes=60),
            timedelta(minutes=60),
            timedelta(minutes=60),
            timedelta(minutes=60),
        ]


class TestAttemptLog:
    """Tests for AttemptLog bookkeeping."""

    def test_defaults(self):
        log = make_log()
        assert log.id.startswith("dlv_")
        assert log.status is AttemptStatus.PENDING
        assert log.attempt_number == 1
        assert log.history == []

    def test_record_failure_schedules_retry(self):
        """A failed first attempt should schedule a retry 1 minute later."""
        log = make_log()

        status = log.record_outcome(failed(503), max_attempts=3, now=NOW)

        assert status is AttemptStatus.RETRY_SCHEDULED
        assert log.http_status == 503
        assert log.error_message == "HTTP 503"
        assert log.next_retry_at == NOW + timedelta(minutes=1)
        assert log.updated_at == NOW
        assert len(log.history) == 1
        assert log.history[0].attempt_number == 1

    def test_record_success(self):
        log = make_log()

        status = log.record_outcome(ok(201), max_attempts=3, now=NOW)

        assert status is AttemptStatus.SUCCESS
        assert log.http_status == 201
        assert log.next_retry_at is None
        assert log.error_message is None

    def test_retry_sequence_keeps_history(self):
        """Each retry should bump the attempt number and append history."""
        log = make_log()
        log.record_outcome(failed(), max_attempts=3, now=NOW)

        assert log.begin_retry() == 2
        log.record_outcome(failed(), max_attempts=3, now=NOW + timedelta(minutes=1))
        assert log.status is AttemptStatus.RETRY_SCHEDULED
        assert log.next_retry_at == NOW + timedelta(minutes=6)

        assert log.begin_retry() == 3
        log.record_outcome(failed(), max_attempts=3, now=NOW + timedelta(minutes=6))

        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.next_retry_at is None
        assert [h.attempt_number for h in log.history] == [1, 2, 3]
        assert [h.status for h in log.history] == [
            AttemptStatus.RETRY_SCHEDULED,
            AttemptStatus.RETRY_SCHEDULED,
            AttemptStatus.ATTEMPTS_EXHAUSTED,
        ]

    def test_begin_retry_requires_scheduled_status(self):
        log = make_log()
        with pytest.raises(InvalidTransitionError):
            log.begin_retry()

    def test_record_truncates_response_and_error(self):
        log = make_log()
        outcome = DeliveryOutcome(http_status=500, response_body="x" * 5000, error="e" * 5000)

        log.record_outcome(outcome, max_attempts=3, now=NOW)

        assert len(log.response_body) == 2000
        assert len(log.error_message) == 1000

    def test_record_clears_lease(self):
        log = make_log()
        log.record_outcome(failed(), max_attempts=3, now=NOW)
        log.lease_token = "abc"
        log.lease_expires_at = NOW + timedelta(minutes=5)
        log.begin_retry()

        log.record_outcome(ok(), max_attempts=3, now=NOW)

        assert log.lease_token is None
        assert log.lease_expires_at is None

    def test_abandon(self):
        """Abandoning keeps the counter and moves to ATTEMPTS_EXHAUSTED."""
        log = make_log()
        log.record_outcome(failed(), max_attempts=3, now=NOW)

        log.abandon("Endpoint disabled", now=NOW)

        assert log.status is AttemptStatus.ATTEMPTS_EXHAUSTED
        assert log.attempt_number == 1
        assert log.error_message == "Endpoint disabled"
        assert log.next_retry_at is None

    def test_success_is_final(self):
        log = make_log()
        log.record_outcome(ok(), max_attempts=3, now=NOW)
        with pytest.raises(InvalidTransitionError):
            log.record_outcome(failed(), max_attempts=3, now=NOW)


class TestDeliveryOutcome:
    """Tests for DeliveryOutcome."""

    @pytest.mark.parametrize(
        ("status", "succeeded"),
        [(200, True), (204, True), (299, True), (301, False), (404, False), (500, False), (None, False)],
    )
    def test_succeeded(self, status: int | None, succeeded: bool):
        assert DeliveryOutcome(http_status=status).succeeded is succeeded


class TestEventEnvelope:
    """Tests for the wire envelope."""

    def test_wire_names(self):
        """The JSON body should use the receivers' field names."""
        envelope = EventEnvelope.for_event(
            EventType.OS_CRIADA,
            entity_id="os_42",
            entity_type="OrdemServico",
            data={"numero": 42},
            timestamp=NOW,
        )

        body = json.loads(envelope.to_json())

        assert body == {
            "evento": "OS_CRIADA",
            "eventoNome": "OS Criada",
            "timestamp": "2026-10-19T12:00:00Z",
            "entidadeId": "os_42",
            "entidadeTipo": "OrdemServico",
            "dados": {"numero": 42},
        }

    def test_test_flag_only_on_test_deliveries(self):
        envelope = EventEnvelope(
            event=EventType.OS_CRIADA,
            event_name="OS Criada",
            test=True,
            timestamp=NOW,
        )
        assert json.loads(envelope.to_json())["teste"] is True

    def test_serialization_is_stable(self):
        """Serializing the same envelope twice should give identical bytes."""
        envelope = EventEnvelope.for_event(EventType.ESTOQUE_BAIXO, data={"sku": "F-1"})
        assert envelope.to_json() == envelope.to_json()

    def test_unserializable_data(self):
        """Data JSON cannot encode should raise SerializationError."""
        envelope = EventEnvelope.for_event(EventType.OS_CRIADA, data={"bad": object()})
        with pytest.raises(SerializationError):
            envelope.to_json()


class TestEndpointInputs:
    """Tests for EndpointCreate and EndpointUpdate."""

    def test_create_leaves_policy_unset(self):
        data = EndpointCreate(name="ERP", url="https://erp.example.com/hook")
        assert data.max_attempts is None
        assert data.timeout_seconds is None

    def test_create_rejects_bad_url(self):
        with pytest.raises(ValidationError):
            EndpointCreate(name="ERP", url="mailto:ops@example.com")

    def test_update_is_partial(self):
        data = EndpointUpdate(name="New name")
        assert data.model_dump(exclude_unset=True) == {"name": "New name"}

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            EndpointUpdate(tenant_id="shop_2")
