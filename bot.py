import sys

from layered_memory_bot.app import main


if __name__ == "__main__":
    try:
        main()
    except ValueError as exc:
        text = str(exc)
        if text.startswith(("DISCORD_", "OLLAMA_", "MEMORY_", "MAX_RESPONSE_CHARS")):
            print(f"Config error: {text}", file=sys.stderr)
            print("Fill DISCORD_TOKEN and the OLLAMA_* / MEMORY_* settings in .env.", file=sys.stderr)
            raise SystemExit(2)
        raise
