"""Login risk scoring and suspicious-login escalation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from auth.fingerprint import parse_user_agent
from auth.models import Account, LoginHistoryEntry, LoginSignals
from auth.policy import LoginPolicy
from auth.services.lockout import extend_lock


@dataclass(frozen=True)
class RiskAssessment:
    suspicious: bool
    risk_score: int
    reasons: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


@dataclass(frozen=True)
class EscalationDecision:
    updates: dict[str, Any]
    locked: bool = False
    lock_until: datetime | None = None


CLEAN = RiskAssessment(suspicious=False, risk_score=0)


def score_login(
    account: Account,
    signals: LoginSignals,
    is_new_device: bool,
    policy: LoginPolicy,
) -> RiskAssessment:
    """
    Score a password-verified login against the account's last known login.

    Every signal adds a non-negative weight, so more anomalies never lower the
    score. An account with no prior login has nothing to compare against.
    """
    if not account.last_login_at:
        return CLEAN

    weights = policy.risk_weights
    score = 0
    reasons: list[str] = []

    def flag(weight: int, reason: str) -> None:
        nonlocal score
        score += weight
        reasons.append(reason)

    if account.last_login_ip and account.last_login_ip != signals.ip:
        flag(weights.new_ip, "New IP address")

    if account.last_login_user_agent and account.last_login_user_agent != signals.user_agent:
        flag(weights.user_agent_changed, "New browser / device")
        previous = parse_user_agent(account.last_login_user_agent)
        if (previous.browser, previous.os) != (signals.client.browser, signals.client.os):
            flag(weights.client_family_changed, "Browser or operating system changed")

    device_changed = bool(account.last_login_device_hash) and account.last_login_device_hash != signals.device_hash
    if is_new_device or device_changed:
        flag(weights.new_device, "New device fingerprint")

    if account.last_login_country and account.last_login_country != signals.geo.country:
        flag(weights.new_country, "Login from new country")

    if account.last_login_city and account.last_login_city != signals.geo.city:
        flag(weights.new_city, "Login from new city")

    if account.failed_login_attempts >= policy.failed_attempts_risk_threshold:
        flag(weights.prior_failed_attempts, "Multiple failed login attempts before success")

    score = min(score, weights.max_score)
    return RiskAssessment(
        suspicious=score >= policy.suspicious_score_threshold and bool(reasons),
        risk_score=score,
        reasons=reasons,
    )


def build_history_entry(
    signals: LoginSignals,
    now: datetime,
    outcome: str,
    assessment: RiskAssessment = CLEAN,
) -> LoginHistoryEntry:
    return LoginHistoryEntry(
        ip=signals.ip,
        user_agent=signals.user_agent,
        device_hash=signals.device_hash,
        country=signals.geo.country,
        city=signals.geo.city,
        time=now,
        suspicious=assessment.suspicious,
        reason=assessment.reason,
        risk_score=assessment.risk_score,
        outcome=outcome,
    )


def append_history(history: list[LoginHistoryEntry], entry: LoginHistoryEntry, limit: int) -> list[LoginHistoryEntry]:
    return [*history, entry][-limit:]


def register_suspicious(account: Account, now: datetime, policy: LoginPolicy) -> EscalationDecision:
    """
    Count a suspicious login and decide whether to escalate to a hard lock.

    ``account.login_history`` must already contain the entry for this attempt.
    Escalation needs the counter at the threshold and the most recent
    threshold-many suspicious entries inside the rolling window.
    """
    count = account.suspicious_login_count + 1
    updates: dict[str, Any] = {"suspicious_login_count": count, "last_suspicious_at": now}

    required = policy.suspicious_escalation_count
    if count < required:
        return EscalationDecision(updates=updates)

    recent = [entry.time for entry in account.login_history if entry.suspicious][-required:]
    if len(recent) < required:
        return EscalationDecision(updates=updates)
    window_start = now - timedelta(minutes=policy.suspicious_window_minutes)
    if min(recent) < window_start:
        return EscalationDecision(updates=updates)

    lock_until = extend_lock(account.lock_until, now + timedelta(minutes=policy.suspicious_lock_minutes))
    updates.update({"lock_until": lock_until, "flagged_for_review": True})
    return EscalationDecision(updates=updates, locked=True, lock_until=lock_until)


def reset_suspicious() -> dict[str, Any]:
    return {"suspicious_login_count": 0, "last_suspicious_at": None}
