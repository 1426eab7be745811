#!/usr/bin/env python3
"""Helper script to check and create .env file for the coordinator."""

from pathlib import Path
import sys

TEMPLATE = """# Supabase Configuration (optional; state is kept in memory without it)
# Get these from: https://supabase.com/dashboard → Your Project → Settings → API
NETCTL_SUPABASE_URL=https://your-project-id.supabase.co
NETCTL_SUPABASE_KEY=your-service-role-key-here

# Bearer tokens
NETCTL_JWT_SECRET=change-me
NETCTL_JWT_ALGORITHM=HS256

# API Configuration
NETCTL_API_PREFIX=/api
# Comma-separated or JSON array: http://localhost:5173,http://127.0.0.1:5173
# NETCTL_FRONTEND_ALLOWED_ORIGINS=

# Scheduler
NETCTL_SCHEDULER_TICK_SECONDS=5
NETCTL_RESCHEDULE_ON_INTERVAL_CHANGE=false
"""


def _mask(value: str) -> str:
    return value[:20] + "..." + value[-6:] if len(value) > 30 else value


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Coordinator Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        env_file.write_text(TEMPLATE, encoding="utf-8")
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it, then run this script again.")
        return

    print(f"✅ Found .env file at: {env_file}")
    print()

    sys.path.insert(0, str(project_root / "src"))
    try:
        from netcontrol.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return

    if settings.supabase_url and settings.supabase_key:
        print(f"✅ Supabase URL: {settings.supabase_url[:30]}...")
        print(f"✅ Supabase key: {_mask(settings.supabase_key)}")
    else:
        print("⚠️  Supabase is NOT configured: events live in memory and are lost on restart")

    if settings.jwt_secret == "change-me":
        print("❌ NETCTL_JWT_SECRET still has its default value")
    else:
        print(f"✅ JWT secret set ({settings.jwt_algorithm})")

    print(f"   API prefix: {settings.api_prefix}")
    print(f"   Allowed origins: {', '.join(settings.frontend_allowed_origins) or '(none)'}")
    print(f"   Scheduler: {'on' if settings.scheduler_enabled else 'off'}, tick {settings.scheduler_tick_seconds}s")


if __name__ == "__main__":
    main()
