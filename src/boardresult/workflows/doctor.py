from __future__ import annotations

import importlib.util
import os
from datetime import datetime, timezone
from pathlib import Path
from string import Formatter
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .monitor import HealthStatus, OperationalMonitor
from .retriever import RetrievalPolicy, load_policy_from_env


_SECRET_TOKENS = ("key", "token", "secret", "password", "webhook")
_INT_ENV_VARS = (
    "BOARDRESULT_MAX_ATTEMPTS",
    "BOARDRESULT_CACHE_TTL",
    "BOARDRESULT_CACHE_MAX_ENTRIES",
    "BOARDRESULT_ALERT_THRESHOLD",
)
_TEMPLATE_FIELDS = {"board", "exam", "roll", "reg", "eiin"}

RECOMMENDATIONS: Dict[HealthStatus, List[str]] = {
    HealthStatus.CRITICAL: [
        "Captcha enforcement detected on the board site.",
        "Captchas cannot be solved automatically.",
        "Look for alternative data sources.",
        "Monitor the board site for changes.",
    ],
    HealthStatus.WARNING: [
        "Multiple consecutive failures detected.",
        "Check whether the board site changed its structure.",
        "Retry later.",
        "Watch for captcha enforcement.",
    ],
    HealthStatus.HEALTHY: [
        "System is healthy.",
        "Continue monitoring.",
        "Consider adding more fallback sources.",
    ],
}


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _is_secret_name(name: str) -> bool:
    lowered = (name or "").lower()
    return any(token in lowered for token in _SECRET_TOKENS)


def redact_value(value: str, keep: int = 4) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if len(raw) <= keep * 2:
        return "*" * len(raw)
    return f"{raw[:keep]}...{raw[-keep:]}"


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def template_problem(template: str) -> Optional[str]:
    """Return why a fallback URL template is unusable, or None when it is fine."""

    try:
        fields = {name for _, name, _, _ in Formatter().parse(template) if name is not None}
    except ValueError as exc:
        return f"unparseable template: {exc}"
    unknown = sorted(fields - _TEMPLATE_FIELDS)
    if unknown:
        return f"unknown placeholder(s): {', '.join(unknown)}"
    if "roll" not in fields:
        return "missing {roll} placeholder"
    if not _is_http_url(template.split("?", 1)[0]):
        return "not an http(s) URL"
    return None


def collect_environment_warnings() -> List[Dict[str, str]]:
    warnings: List[Dict[str, str]] = []
    for name in _INT_ENV_VARS:
        raw = os.getenv(name, "").strip()
        if not raw:
            continue
        try:
            int(raw)
        except ValueError:
            warnings.append(
                {
                    "code": f"{name.lower()}_invalid",
                    "message": f"{name}={raw!r} is not an integer; the default is used.",
                    "remedy": f"Set {name} to a whole number or unset it.",
                }
            )
    if os.getenv("BOARDRESULT_CACHE_DISABLE", "0").strip().lower() in {"1", "true", "yes", "on"}:
        warnings.append(
            {
                "code": "cache_disabled",
                "message": "Result cache disabled; every lookup reaches the board site.",
                "remedy": "Unset BOARDRESULT_CACHE_DISABLE outside of debugging.",
            }
        )
    return warnings


def build_doctor_report(
    *,
    policy: Optional[RetrievalPolicy] = None,
    env_path: Optional[Path] = None,
) -> Dict[str, Any]:
    policy = policy or load_policy_from_env()
    report: Dict[str, Any] = {
        "generated_at": _utc_stamp(),
        "ok": True,
        "checks": [],
        "environment_warnings": collect_environment_warnings(),
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = redact_value(value) if _is_secret_name(name) else value
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    base_url = policy.strategy.base_url
    add_check(
        "BOARDRESULT_BASE_URL",
        _is_http_url(base_url),
        detail=base_url,
        remedy="Set BOARDRESULT_BASE_URL to an absolute http(s) URL.",
    )

    problems = []
    for template in policy.fallback_urls:
        problem = template_problem(template)
        if problem:
            problems.append(f"{template}: {problem}")
    add_check(
        "BOARDRESULT_FALLBACK_URLS",
        not problems,
        detail="; ".join(problems) if problems else f"{len(policy.fallback_urls)} fallback source(s)",
        remedy="Use comma-separated http(s) templates with {board}, {exam}, {roll}, {reg}, {eiin}.",
    )

    webhook = policy.alert_webhook_url
    add_check(
        "BOARDRESULT_ALERT_WEBHOOK",
        bool(webhook),
        detail="Alerts posted to webhook" if webhook else "Alerts are logged only",
        remedy="Set BOARDRESULT_ALERT_WEBHOOK to receive failure and captcha alerts.",
        level="info",
        value=webhook,
    )

    dotenv_file = Path(env_path or (Path.cwd() / ".env"))
    add_check(
        ".env",
        dotenv_file.exists(),
        detail=str(dotenv_file),
        level="info",
    )

    lxml_ok = importlib.util.find_spec("lxml") is not None
    add_check(
        "lxml",
        lxml_ok,
        detail="lxml parser available" if lxml_ok else "falling back to html.parser",
        remedy="pip install lxml",
    )

    return report


def summarize_metrics(monitor: OperationalMonitor) -> Dict[str, Any]:
    metrics = monitor.get_metrics()
    return {
        "total_requests": metrics.total_requests,
        "success_rate": f"{monitor.get_success_rate():.1f}%",
        "average_response_time": f"{metrics.average_response_time / 1000.0:.1f}s",
        "status": monitor.get_health_status().value,
    }


def build_monitoring_report(monitor: OperationalMonitor, cache_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    status = monitor.get_health_status()
    metrics = monitor.get_metrics().to_dict()
    metrics["success_rate"] = monitor.get_success_rate()
    return {
        "generated_at": _utc_stamp(),
        "health": {"status": status.value, "is_healthy": status is HealthStatus.HEALTHY},
        "metrics": metrics,
        "summary": summarize_metrics(monitor),
        "cache": cache_stats or {"size": 0, "entries": []},
        "recommendations": list(RECOMMENDATIONS[status]),
    }


def format_monitoring_report(report: Dict[str, Any]) -> str:
    health = report.get("health", {})
    summary = report.get("summary", {})
    cache = report.get("cache", {})
    lines: List[str] = [
        "Result retrieval health",
        f"Generated: {report.get('generated_at')}",
        f"Status: {health.get('status', 'unknown')}",
        f"Requests: {summary.get('total_requests', 0)}",
        f"Success rate: {summary.get('success_rate', '0.0%')}",
        f"Average response time: {summary.get('average_response_time', '0.0s')}",
        f"Cached results: {cache.get('size', 0)}",
    ]
    recommendations = report.get("recommendations") or []
    if recommendations:
        lines.append("")
        lines.append("Recommendations:")
        lines.extend(f"- {item}" for item in recommendations)
    return "\n".join(lines).rstrip() + "\n"


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Board result doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("Values are redacted where applicable.")
    lines.append("")
    for check in report.get("checks", []):
        label = f"{check.get('name', 'check')}: {check.get('status', 'unknown')}"
        if check.get("value"):
            label = f"{label} ({check['value']})"
        lines.append(f"- [{check.get('level', 'info')}] {label}")
        if check.get("detail"):
            lines.append(f"  detail: {check['detail']}")
        if check.get("remedy") and check.get("status") != "ok":
            lines.append(f"  remedy: {check['remedy']}")
    warnings = report.get("environment_warnings") or []
    if warnings:
        lines.append("")
        lines.append("Environment warnings:")
        for warning in warnings:
            lines.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
            if warning.get("remedy"):
                lines.append(f"  remedy: {warning['remedy']}")
    return "\n".join(lines).rstrip() + "\n"
