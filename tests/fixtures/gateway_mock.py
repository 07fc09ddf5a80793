"""
Mock Audit Intelligence Gateway

Configurable respx mock of the OpenAI-compatible chat-completions endpoint
used by AuditIntelligenceClient, so tests never reach the real gateway.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import respx
from respx import MockRouter


GATEWAY_BASE_URL = "https://gateway.test/v1"
TOOL_NAME = "generate_audit_intelligence"


# =============================================================================
# RESPONSE FACTORIES
# =============================================================================

def intelligence_arguments(**overrides) -> Dict[str, Any]:
    """Tool-call arguments that satisfy the audit intelligence contract."""
    arguments = {
        "anomalies": [
            {
                "anomaly_type": "year_end_spike",
                "risk_score": 62,
                "trigger_condition": "March revenue is 41% of annual revenue",
                "deviation_pct": 41.0,
                "current_value": 410000.0,
                "last_year_value": None,
                "confidence_score": 80,
                "suggested_audit_action": "Vouch March invoices to dispatch records",
            }
        ],
        "risk_themes": [
            {
                "theme_name": "Revenue cut-off",
                "risk_score": 55,
                "confidence_score": 70,
                "impact_area": "Revenue",
                "impacted_value": 410000.0,
                "transaction_count": 12,
                "explanation": "Year-end revenue concentration with manual entries",
                "suggested_action": "Perform cut-off testing",
                "contributing_flags": ["year_end_spike"],
            }
        ],
        "samples": [
            {
                "sample_type": "high_risk",
                "sample_name": "March manual journal",
                "entity_type": "journal_entry",
                "entity_id": "JE-0042",
                "entity_reference": "JE-0042",
                "risk_weight": 0.9,
                "reason_selected": "Manual round-figure entry on 31 March",
                "amount": 50000.0,
            }
        ],
        "narratives": [
            {
                "narrative_type": "executive_summary",
                "content": "Revenue of Rs 10,00,000 with 41% booked in March.",
                "data_points": ["march_share=41%"],
            }
        ],
        "risk_breakdown": {
            "revenue_pattern": 12,
            "cash_manipulation": 3,
            "gst": 4,
            "tds": 2,
            "journal": 6,
            "control_override": 1,
            "vendor_concentration": 2,
        },
    }
    arguments.update(overrides)
    return arguments


def completion_body(arguments: Any) -> Dict[str, Any]:
    """Chat-completions response carrying one forced tool call."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {
        "id": "chatcmpl-test",
        "choices": [{
            "index": 0,
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": TOOL_NAME, "arguments": arguments},
                }],
            },
            "finish_reason": "tool_calls",
        }],
    }


# =============================================================================
# MOCK SERVER
# =============================================================================

class MockAuditGateway:
    """
    Configurable mock gateway.

    Usage:
        gateway = MockAuditGateway()

        with gateway.activate():
            intelligence = await client.analyze(digest, "2025-26")

        gateway.set_status(429)          # rate limited
        gateway.set_arguments({...})     # contract-violating payload
        gateway.set_timeout()            # transport timeout
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._router: Optional[MockRouter] = None
        self.reset()

    def reset(self):
        """Reset all configurations to defaults."""
        self._status_code = 200
        self._body: Optional[Any] = None
        self._arguments: Any = intelligence_arguments()
        self._raise: Optional[Exception] = None

    # ===========================================
    # Behaviours
    # ===========================================

    def set_status(self, status_code: int, body: Optional[Any] = None):
        self._status_code = status_code
        self._body = body if body is not None else {"error": {"message": f"status {status_code}"}}

    def set_body(self, body: Any):
        """Answer 200 with an arbitrary body, e.g. one without tool calls."""
        self._status_code = 200
        self._body = body

    def set_arguments(self, arguments: Any):
        self._arguments = arguments

    def set_timeout(self):
        self._raise = httpx.ReadTimeout("gateway timed out")

    def set_unreachable(self):
        self._raise = httpx.ConnectError("connection refused")

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def last_payload(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)

    # ===========================================
    # Mock Router Setup
    # ===========================================

    def activate(self) -> MockRouter:
        """Activate the mock gateway and return the router."""
        self._router = respx.mock(base_url=GATEWAY_BASE_URL, assert_all_called=False)
        self._router.post("/chat/completions").mock(side_effect=self._handle_completion)
        return self._router

    def _handle_completion(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._raise is not None:
            raise self._raise
        if self._body is not None:
            if isinstance(self._body, (bytes, str)):
                return httpx.Response(self._status_code, content=self._body)
            return httpx.Response(self._status_code, json=self._body)
        return httpx.Response(200, json=completion_body(self._arguments))
