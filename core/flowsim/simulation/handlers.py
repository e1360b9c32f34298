"""
Sample payload handlers for every node kind.

These stand in for real executors: they shape plausible output data from
the node's config and the run's test inputs, and never perform I/O.
Importing this module registers them on ``default_registry``.
"""

from typing import Any

from flowsim.errors import SimulatedNodeError
from flowsim.simulation.registry import SimulationContext, default_registry

register = default_registry.register

SWITCH_CASES = ["case1", "case2", "case3", "default"]
SENTIMENTS = ["positive", "negative", "neutral"]

_PERSONA_STYLES = {
    "customer-support": "helpful and supportive",
    "technical": "technical and detailed",
    "creative": "creative and imaginative",
    "custom": "custom-defined",
}


# ============================================================================
# Triggers
# ============================================================================


@register("trigger", "webhook")
def webhook_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Trigger node "{ctx.name}" activated')
    p = ctx.provider
    return {
        "method": "POST",
        "path": ctx.config.get("path") or "/webhook",
        "headers": {
            "content-type": "application/json",
            "user-agent": "Mozilla/5.0",
            "x-request-id": f"req-{p.token()}",
        },
        "body": ctx.test_inputs.get("webhookPayload")
        or {
            "event": "user.created",
            "data": {"id": 123, "name": "John Doe", "email": "john@example.com"},
        },
        "timestamp": p.timestamp(),
    }


@register("trigger", "schedule")
def schedule_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Trigger node "{ctx.name}" activated')
    return {
        "scheduledTime": ctx.provider.timestamp(),
        "frequency": ctx.config.get("frequency") or "daily",
        "executionId": f"exec-{ctx.provider.token()}",
    }


@register("trigger")
def trigger_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Trigger node "{ctx.name}" activated')
    return {"triggered": True, "timestamp": ctx.provider.timestamp(), "source": ctx.subtype}


# ============================================================================
# Actions
# ============================================================================


@register("action", "http")
def http_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Executing action "{ctx.name}"')
    p = ctx.provider
    return {
        "status": 200,
        "statusText": "OK",
        "headers": {"content-type": "application/json", "server": "nginx/1.18.0"},
        "data": {"success": True, "id": p.randint(0, 999), "timestamp": p.timestamp()},
        "duration": p.randint(100, 599),
    }


@register("action", "database")
def database_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Executing action "{ctx.name}"')
    return {
        "operation": ctx.config.get("operation") or "query",
        "affectedRows": ctx.provider.randint(1, 10),
        "data": [
            {"id": 1, "name": "Item 1", "status": "active"},
            {"id": 2, "name": "Item 2", "status": "pending"},
            {"id": 3, "name": "Item 3", "status": "active"},
        ],
        "duration": ctx.provider.randint(50, 149),
    }


@register("action")
def action_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Executing action "{ctx.name}"')
    return {
        "success": True,
        "timestamp": ctx.provider.timestamp(),
        "result": f"Action {ctx.subtype} completed successfully",
    }


# ============================================================================
# Logic
# ============================================================================


@register("logic", "if")
def if_payload(ctx: SimulationContext) -> dict[str, Any]:
    condition = ctx.config.get("condition") or ""
    ctx.note(f"Evaluating condition: {condition}")
    result = ctx.provider.random() > 0.5
    ctx.note(f"Condition evaluated to: {'true' if result else 'false'}")
    return {"condition": condition, "result": result, "evaluatedAt": ctx.provider.timestamp()}


@register("logic", "switch")
def switch_payload(ctx: SimulationContext) -> dict[str, Any]:
    expression = ctx.config.get("expression") or ""
    ctx.note(f"Evaluating switch expression: {expression}")
    selected = ctx.provider.choice(SWITCH_CASES)
    ctx.note(f"Switch selected: {selected}")
    return {"expression": expression, "result": selected, "evaluatedAt": ctx.provider.timestamp()}


@register("logic")
def logic_payload(ctx: SimulationContext) -> dict[str, Any]:
    return {"type": ctx.subtype, "processed": True, "timestamp": ctx.provider.timestamp()}


# ============================================================================
# Code
# ============================================================================


def _code_items(ctx: SimulationContext) -> list[dict[str, Any]]:
    return [{"id": f"a{i}", "value": ctx.provider.uniform(0, 100)} for i in (1, 2, 3)]


@register("code", "javascript")
@register("code", "python")
def script_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Executing code in "{ctx.name}"')
    code = ctx.config.get("code") or ""
    has_custom_code = bool(code.strip())

    if has_custom_code:
        ctx.note(f"Executing custom {ctx.subtype} code")
        if ctx.config.get("customInputs"):
            ctx.note(f"Using custom input parameters: {ctx.config['customInputs']}")
        if ctx.should_fail("code"):
            raise SimulatedNodeError(f"Error in custom code: Syntax error in {ctx.subtype} code")

    data: dict[str, Any] = {"processed": True, "items": _code_items(ctx)}
    if has_custom_code:
        data["customOutput"] = "Output from custom code execution"

    return {
        "executed": True,
        "duration": ctx.provider.randint(50, 249),
        "codeType": ctx.subtype,
        "customCode": has_custom_code,
        "sandboxMode": ctx.config.get("enableSandbox") is not False,
        "result": {"success": True, "data": data},
    }


@register("code")
def code_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Executing code in "{ctx.name}"')
    return {
        "executed": True,
        "duration": ctx.provider.randint(50, 249),
        "result": {"success": True, "data": {"processed": True, "items": _code_items(ctx)}},
    }


# ============================================================================
# AI
# ============================================================================


@register("ai", "ai-agent")
def ai_agent_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'AI processing in "{ctx.name}"')
    config = ctx.config
    p = ctx.provider

    has_instructions = bool(config.get("customInstructions"))
    model = config.get("model") or "gpt-4"
    persona = config.get("persona")
    training_data = config.get("trainingData")
    custom_persona = persona if persona and persona != "default" else None

    if has_instructions:
        ctx.note("Using custom instructions for AI behavior")
    if model == "custom-fine-tuned":
        ctx.note(f"Using custom fine-tuned model: {config.get('customModelId') or 'unnamed model'}")
    if custom_persona:
        ctx.note(f"Using {custom_persona} persona")
    if training_data and training_data != "none":
        ctx.note(f"Using training data from {training_data} source")

    completion = ctx.test_inputs.get("aiResponse") or (
        "I'm following your custom instructions while helping you."
        if has_instructions
        else "I'm an AI assistant. How can I help you today?"
    )
    prompt_tokens = p.randint(50, 149)
    completion_tokens = p.randint(100, 299)

    payload: dict[str, Any] = {
        "model": model,
        "prompt": config.get("systemPrompt") or "You are a helpful assistant",
        "completion": completion,
        "responseStyle": _PERSONA_STYLES.get(custom_persona, "standard")
        if custom_persona
        else "standard",
        "fineTuned": model == "custom-fine-tuned" or bool(training_data and training_data != "none"),
        "customInstructions": has_instructions,
        "tokens": {
            "prompt": prompt_tokens,
            "completion": completion_tokens,
            "total": prompt_tokens + completion_tokens,
        },
        "duration": p.randint(1000, 2999),
    }
    if model == "custom-fine-tuned":
        payload["customModel"] = config.get("customModelId")
    return payload


@register("ai", "sentiment-analysis")
def sentiment_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'AI processing in "{ctx.name}"')
    p = ctx.provider
    sentiment = p.choice(SENTIMENTS)
    scores = {
        name: p.uniform(0.5, 1.0) if name == sentiment else p.uniform(0, 0.3) for name in SENTIMENTS
    }
    return {
        "text": ctx.test_inputs.get("sentimentText") or "I really enjoyed using this product!",
        "sentiment": sentiment,
        "confidence": p.uniform(0.5, 1.0),
        "scores": scores,
    }


@register("ai")
def ai_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'AI processing in "{ctx.name}"')
    return {
        "processed": True,
        "aiType": ctx.subtype,
        "result": "AI processing completed successfully",
        "confidence": ctx.provider.uniform(0.7, 1.0),
    }


# ============================================================================
# Messaging, integrations, banking
# ============================================================================


@register("message")
def message_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Sending message: "{ctx.config.get("message") or "No message content"}"')
    return {"sent": True, "timestamp": ctx.provider.timestamp()}


@register("integration")
def integration_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Connecting to integration "{ctx.name}"')
    if ctx.should_fail("integration"):
        raise SimulatedNodeError(f"Integration error: Could not connect to {ctx.name}")

    p = ctx.provider
    return {
        "service": ctx.subtype,
        "operation": ctx.config.get("operation") or "query",
        "status": "success",
        "data": {
            "id": f"{ctx.subtype}-{p.randint(0, 999)}",
            "timestamp": p.timestamp(),
            "details": {
                "account": "Business Account",
                "plan": "Enterprise",
                "usage": p.randint(0, 999),
            },
        },
    }


@register("banking", "transaction-processing")
def transaction_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Processing banking operation "{ctx.name}"')
    p = ctx.provider
    return {
        "transactionId": f"txn-{p.token()}",
        "amount": round(p.uniform(100, 1100), 2),
        "currency": ctx.config.get("currency") or "USD",
        "status": "completed",
        "timestamp": p.timestamp(),
        "accountId": ctx.config.get("accountId") or "ACC123456789",
        "reference": f"REF-{p.randint(0, 999999)}",
    }


@register("banking", "fraud-detection")
def fraud_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Processing banking operation "{ctx.name}"')
    p = ctx.provider
    risk_score = p.randint(0, 99)
    if risk_score < 30:
        risk_level = "low"
    elif risk_score < 70:
        risk_level = "medium"
    else:
        risk_level = "high"
    return {
        "transactionId": f"txn-{p.token()}",
        "riskScore": risk_score,
        "riskLevel": risk_level,
        "flags": ["unusual_location", "high_value"] if risk_score > 70 else [],
        "recommendation": "block" if risk_score > 70 else "allow",
        "confidence": p.uniform(0.8, 1.0),
    }


@register("banking")
def banking_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f'Processing banking operation "{ctx.name}"')
    return {
        "operation": ctx.subtype,
        "status": "success",
        "timestamp": ctx.provider.timestamp(),
        "details": f"Banking operation {ctx.subtype} completed successfully",
    }


@default_registry.set_default
def fallback_payload(ctx: SimulationContext) -> dict[str, Any]:
    ctx.note(f"Unknown node type: {ctx.kind}", level="warning")
    return {"processed": True, "timestamp": ctx.provider.timestamp()}
