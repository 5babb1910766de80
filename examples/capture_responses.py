import asyncio
import nodriver
from tabwarden import ObserverLifecycleManager, ResponseCapture

URL = "https://example.com"

async def main():
    browser = await nodriver.start()
    capture = ResponseCapture([r"example\.com"], "./responses")
    manager = ObserverLifecycleManager(browser, [capture])
    await manager.start()
    await browser.get(URL)
    # let the page finish loading
    await asyncio.sleep(5)
    print("saved", capture.saved, "responses to ./responses")
    await manager.shutdown()

if __name__ == "__main__":
    asyncio.run(main())
