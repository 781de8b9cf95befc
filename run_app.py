#!/usr/bin/env python3
"""
Referral Ledger Runner
======================

Run the API server or create the database tables.

Usage:
    python run_app.py                    # Development mode with auto-reload
    python run_app.py --mode prod        # Production mode
    python run_app.py --port 8001        # Custom port
    python run_app.py --init-db          # Create tables and exit
"""

import argparse
import asyncio
import sys

def print_banner():
    """Print application banner"""
    banner = """
╔═══════════════════════════════════════════════════════╗
║                  Referral Ledger API                  ║
╚═══════════════════════════════════════════════════════╝
    """
    print(banner)

def init_database() -> int:
    """Create all tables for the configured DATABASE_URL"""
    from app.core.database import init_db, close_db

    async def _run():
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(_run())
    print("✅ Database tables created")
    return 0

def run_main_app(host: str, port: int, reload: bool, workers: int):
    """Run the FastAPI application"""
    print(f"\n🚀 Starting Referral Ledger API on {host}:{port}")
    print(f"📖 API Docs: http://{host}:{port}/api/docs")
    print("\n" + "=" * 50)

    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else workers,
        log_level="info"
    )

def main():
    from app.core.config import settings

    parser = argparse.ArgumentParser(
        description="Referral Ledger Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="Server mode (default: dev)"
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help=f"Host to bind to (default: {settings.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Port to bind to (default: {settings.PORT})"
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create database tables and exit"
    )

    args = parser.parse_args()

    print_banner()

    if args.init_db:
        return init_database()

    run_main_app(args.host, args.port, reload=args.mode == "dev", workers=settings.WORKERS)
    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")
        sys.exit(0)
