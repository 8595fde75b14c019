"""
Entry point for the CropGenius API server
Runs cropgenius.main:app under uvicorn
"""

import sys

import uvicorn

from cropgenius.core.settings import settings


def main():
    """Entry point"""
    try:
        # Print welcome banner
        print("\n" + "="*60)
        print("   CROPGENIUS API")
        print("   FARM INTELLIGENCE FOR AFRICAN SMALLHOLDERS")
        print("="*60)
        print(f"   Listening: http://{settings.HOST}:{settings.PORT}")
        print(f"   Pesapal: {settings.PESAPAL_ENVIRONMENT}")
        print(f"   Gemini: {'configured' if settings.GEMINI_API_KEY else 'not configured'}")
        print(f"   WhatsApp: {'configured' if settings.WHATSAPP_ACCESS_TOKEN else 'not configured'}")
        print("="*60 + "\n")

        uvicorn.run(
            "cropgenius.main:app",
            host=settings.HOST,
            port=settings.PORT,
            log_level=settings.LOG_LEVEL.lower(),
        )

    except KeyboardInterrupt:
        print("\n\n✅ Server stopped by user")
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
