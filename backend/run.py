#!/usr/bin/env python3
"""
QuizGuard Backend - Startup Script
Run this file to start the server with proper configuration
"""

import os
import sys
from pathlib import Path


def check_environment():
    """Check if environment is properly set up"""
    print("🔍 Checking environment setup...")

    from dotenv import load_dotenv
    load_dotenv()

    if os.getenv("STORAGE_BACKEND") == "memory":
        print("⚠️  WARNING: STORAGE_BACKEND=memory, sessions and attempts are lost on restart")
        return True

    if not Path(".env").exists():
        print("❌ ERROR: .env file not found!")
        print("📝 Set SECRET_KEY, SUPABASE_URL and SUPABASE_KEY, or STORAGE_BACKEND=memory")
        return False

    required_vars = [
        'SECRET_KEY',
        'SUPABASE_URL',
        'SUPABASE_KEY',
    ]

    missing = [var for var in required_vars if not os.getenv(var)]

    if missing:
        print("❌ ERROR: Missing required environment variables:")
        for var in missing:
            print(f"   - {var}")
        print("\n📝 Please update your .env file")
        return False

    print("✅ Environment check passed!")
    return True


def check_dependencies():
    """Check if all dependencies are installed"""
    print("\n🔍 Checking dependencies...")

    try:
        import fastapi
        import uvicorn
        import supabase
        import jose
        print("✅ All core dependencies installed!")
        return True
    except ImportError as e:
        print(f"❌ ERROR: Missing dependency: {e}")
        print("\n📦 Install dependencies with:")
        print("   pip install -e .")
        return False


def print_banner():
    """Print startup banner"""
    banner = """
╔═══════════════════════════════════════════════════╗
║                                                   ║
║                    QuizGuard                      ║
║        Exam Integrity Monitoring & Grading        ║
║                                                   ║
║                  Backend Server                   ║
║                   Version 1.0.0                   ║
║                                                   ║
╚═══════════════════════════════════════════════════╝
    """
    print(banner)


def print_startup_info(port: int):
    """Print startup information"""
    print("\n🚀 Starting server...")
    print("\n📚 Once started, you can access:")
    print(f"   • API Docs (Swagger): http://localhost:{port}/docs")
    print(f"   • Health Check:       http://localhost:{port}/health")
    print("\n💡 Press CTRL+C to stop the server")
    print("\n" + "="*55 + "\n")


def main():
    """Main startup function"""
    print_banner()

    if not check_environment():
        sys.exit(1)

    if not check_dependencies():
        sys.exit(1)

    import uvicorn
    from quizguard.config import settings

    print_startup_info(settings.port)

    try:
        uvicorn.run(
            "quizguard.main:app",
            host=settings.host,
            port=settings.port,
            reload=settings.debug,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\n\n👋 Server stopped by user")


if __name__ == "__main__":
    main()
