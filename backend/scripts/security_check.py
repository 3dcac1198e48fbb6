#!/usr/bin/env python3
"""
Security baseline checks for CI/CD.

Verifies:
- Required environment variables exist
- Secrets are set (and not placeholders) outside local/test environments
- Rate limit and split-policy configuration is sane
"""

import sys

from eventswap.infrastructure.settings import Settings, get_settings

_DEV_ENVS = ("test", "development", "local")
_PLACEHOLDERS = ("change-me", "changeme", "your-secret-here")


def check_required_env_vars(settings: Settings) -> bool:
    """Check that required environment variables are set"""
    required_vars = {
        "DATABASE_URL": settings.DATABASE_URL,
        "REDIS_URL": settings.REDIS_URL,
        "JWT_SECRET": settings.JWT_SECRET,
    }
    missing = [var for var, value in required_vars.items() if not value]

    if missing:
        print(f"❌ Missing required environment variables: {', '.join(missing)}")
        return False

    print("✅ All required environment variables are set")
    return True


def check_secrets(settings: Settings) -> bool:
    """Check that secrets are properly configured"""
    issues = []
    strict = settings.ENV.lower() not in _DEV_ENVS

    if strict and len(settings.JWT_SECRET) < 32:
        issues.append(f"JWT_SECRET is too short (min 32 chars, got {len(settings.JWT_SECRET)})")

    if strict:
        if not settings.PAYMENT_WEBHOOK_SECRET:
            issues.append("PAYMENT_WEBHOOK_SECRET must be set in non-dev environments")
        for name in ("JWT_SECRET", "PAYMENT_WEBHOOK_SECRET"):
            if getattr(settings, name).lower() in _PLACEHOLDERS:
                issues.append(f"{name} is using a placeholder value in non-dev environment")
        if not settings.METRICS_PUBLIC and not settings.METRICS_TOKEN:
            issues.append("METRICS_TOKEN should be set when metrics are not public")

    if issues:
        for issue in issues:
            print(f"❌ {issue}")
        return False

    print("✅ Secrets are properly configured")
    return True


def check_rate_limit_config(settings: Settings) -> bool:
    """Check that rate limit configuration is valid"""
    issues = []

    if settings.RL_WEBHOOK_PER_MIN <= 0:
        issues.append("RL_WEBHOOK_PER_MIN must be > 0")
    if settings.RL_ADMIN_PER_MIN <= 0:
        issues.append("RL_ADMIN_PER_MIN must be > 0")
    if settings.RL_PARTNER_API_PER_MIN <= 0:
        issues.append("RL_PARTNER_API_PER_MIN must be > 0")

    if issues:
        for issue in issues:
            print(f"❌ {issue}")
        return False

    print("✅ Rate limit configuration valid:")
    print(f"   - Webhooks: {settings.RL_WEBHOOK_PER_MIN} req/min")
    print(f"   - Admin: {settings.RL_ADMIN_PER_MIN} req/min")
    print(f"   - Partner API: {settings.RL_PARTNER_API_PER_MIN} req/min per key")
    return True


def check_dispute_policy(settings: Settings) -> bool:
    """PERCENT split must stay within 0-100"""
    if settings.DISPUTE_PARTIAL_SPLIT_MODE == "PERCENT" and not 0 < settings.DISPUTE_PARTIAL_BUYER_PERCENT < 100:
        print("❌ DISPUTE_PARTIAL_BUYER_PERCENT must be between 0 and 100 (exclusive)")
        return False
    print(f"✅ Dispute split policy: {settings.DISPUTE_PARTIAL_SPLIT_MODE}")
    return True


def check_security_headers(settings: Settings) -> bool:
    """HSTS should be enabled in production"""
    if settings.is_production and not settings.ENABLE_HSTS:
        print("⚠️  HSTS is disabled in production (consider enabling)")

    print("✅ Security headers configuration checked")
    return True


def main(settings: Settings = None) -> int:
    """Run all security checks"""
    settings = settings or get_settings()

    print(f"Running security checks for environment: {settings.ENV}")
    print("-" * 50)

    success = True
    success &= check_required_env_vars(settings)
    success &= check_secrets(settings)
    success &= check_rate_limit_config(settings)
    success &= check_dispute_policy(settings)
    success &= check_security_headers(settings)

    print("-" * 50)
    if success:
        print("✅ All security baseline checks passed")
        return 0
    print("❌ Security baseline checks failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
