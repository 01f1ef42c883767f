"""
KubeHealth - Report Composer
Renders a Report into one Slack mrkdwn message.
"""

from datetime import timezone

from kubehealth.models import CANONICAL_KIND_ORDER, FindingKind, ResourceType

MAX_ITEMS_PER_SECTION = 50
# Termination messages can be whole log tails; keep one line per restart.
MAX_MESSAGE_CHARS = 200

REPORT_TITLE = "Kubernetes Health Report"
HEALTHY_MESSAGE = ":white_check_mark: All healthy: no issues found."

_RESOURCE_LABELS = {
    ResourceType.CPU: "CPU",
    ResourceType.MEMORY: "MEM",
}


def compose(report, config, max_items=MAX_ITEMS_PER_SECTION):
    """Render the whole report as a single self-contained string."""
    lines = [_header(report, config), _context_line(config)]

    if report.is_healthy:
        lines.append("")
        lines.append(HEALTHY_MESSAGE)
        return "\n".join(lines)

    for kind in CANONICAL_KIND_ORDER:
        items = report.section(kind)
        if not items:
            continue
        title, render = _SECTIONS[kind]
        lines.append("")
        lines.append(f"*{title}* ({len(items)})")
        lines.extend(render(finding) for finding in items[:max_items])
        if len(items) > max_items:
            lines.append(f"...and {len(items) - max_items} more")

    return "\n".join(lines)


def report_title(cluster_name=None, datacenter_name=None):
    if cluster_name and datacenter_name:
        return f"{REPORT_TITLE} - {cluster_name} ({datacenter_name})"
    if cluster_name or datacenter_name:
        return f"{REPORT_TITLE} - {cluster_name or datacenter_name}"
    return REPORT_TITLE


def format_timestamp(timestamp):
    """RFC 3339 in UTC, second precision."""
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_duration(delta):
    """Human-readable duration, e.g. 10m, 1h 5m, 2d 3h."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)

    if days > 0:
        return f"{days}d {hours}h"
    elif hours > 0:
        return f"{hours}h {minutes}m"
    else:
        return f"{minutes}m"


def format_percent(value):
    text = f"{value:.1f}"
    if text.endswith(".0"):
        text = text[:-2]
    return f"{text}%"


def escape_text(text):
    """Escape the three characters Slack mrkdwn treats as control sequences."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_quantity(resource, amount):
    if resource is ResourceType.CPU:
        return f"{amount}m"
    if amount >= 1024 ** 3:
        return f"{amount / 1024 ** 3:.1f}Gi"
    return f"{amount / 1024 ** 2:.0f}Mi"


# ---- Section renderers ----

def _header(report, config):
    title = report_title(report.cluster_name, config.datacenter_name)
    return f"*{title}*  |  Generated: {format_timestamp(report.generated_at)}"


def _context_line(config):
    return (
        f"Namespaces: {', '.join(config.namespaces)}  |  "
        f"Threshold: {config.threshold_percent:g}%  |  "
        f"Grace: restarts {config.restart_grace_minutes:g}m, "
        f"pending {config.pending_grace_minutes:g}m"
    )


def _render_unavailable(finding):
    d = finding.detail
    return f"• `{finding.target}` {d.error.value}: {escape_text(d.reason)}"


def _render_over_threshold(finding):
    d = finding.detail
    return (
        f"• `{finding.target}` {_RESOURCE_LABELS[d.resource]} {format_percent(d.percent)} of request "
        f"({format_quantity(d.resource, d.usage)} / {format_quantity(d.resource, d.request)})"
    )


def _render_restart(finding):
    d = finding.detail
    line = f"• `{finding.target}` [{d.container}] restarts: {d.restart_count}"
    if d.last_reason:
        code = f", exit {d.last_exit_code}" if d.last_exit_code is not None else ""
        line += f" (last: {escape_text(d.last_reason)}{code})"
    if d.last_message:
        line += f" - {escape_text(_one_line(d.last_message))}"
    if d.last_restart_time:
        line += f"\n  last: {format_timestamp(d.last_restart_time)}"
    return line


def _render_pending(finding):
    d = finding.detail
    return f"• `{finding.target}` pending for {format_duration(d.elapsed)} (since {format_timestamp(d.since)})"


def _render_no_metrics(finding):
    d = finding.detail
    return f"• `{finding.target}` {_RESOURCE_LABELS[d.resource]}: {escape_text(d.reason)}"


def _one_line(text, limit=MAX_MESSAGE_CHARS):
    text = " ".join(text.split())
    if len(text) > limit:
        text = text[:limit - 3] + "..."
    return text


_SECTIONS = {
    FindingKind.NAMESPACE_UNAVAILABLE: ("Namespaces unavailable", _render_unavailable),
    FindingKind.OVER_THRESHOLD: ("High resource usage", _render_over_threshold),
    FindingKind.RESTARTED_CONTAINER: ("Container restarts", _render_restart),
    FindingKind.PENDING_TOO_LONG: ("Pending pods", _render_pending),
    FindingKind.NO_METRICS: ("Missing metrics", _render_no_metrics),
}

_missing = set(FindingKind) - set(_SECTIONS)
if _missing:
    raise RuntimeError(f"no renderer for finding kinds: {sorted(k.value for k in _missing)}")
