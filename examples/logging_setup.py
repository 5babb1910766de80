import asyncio
import logging
from tabwarden import Settings, Tabwarden

# show how to raise log level beyond default warnings/errors
async def main():
    logging.basicConfig(level=logging.INFO)
    logging.getLogger("tabwarden.ObserverLifecycleManager").setLevel(logging.DEBUG)
    code = await Tabwarden(Settings(startup_urls="https://example.com")).run()
    print("exit code", code)

if __name__ == "__main__":
    asyncio.run(main())
