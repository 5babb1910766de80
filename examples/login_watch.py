import asyncio
import logging
import os
import nodriver
from tabwarden import (
    Credentials,
    LoginStateMachine,
    LoginUrlSet,
    NodriverPageDriver,
    PageWatcher,
    X_LOGIN_URLS,
)

async def main():
    logging.basicConfig(level=logging.INFO)
    browser = await nodriver.start()
    tab = await browser.get(X_LOGIN_URLS[0])
    # credentials come from the environment so nothing secret lives in the script
    machine = LoginStateMachine(Credentials(
        username=os.environ.get("LOGIN_USERNAME"),
        password=os.environ.get("LOGIN_PASSWORD"),
        email_address=os.environ.get("LOGIN_EMAIL_ADDRESS"),
        otp_secret=os.environ.get("LOGIN_OTP_SECRET"),
    ))
    watcher = PageWatcher(NodriverPageDriver(tab), LoginUrlSet(X_LOGIN_URLS), machine)
    watcher.start()
    # give the flow a minute, then stop polling
    await asyncio.sleep(60)
    watcher.stop()
    await watcher.wait_stopped(10)
    print("attempts:", watcher.attempts, "last result:", watcher.last_result)
    browser.stop()

if __name__ == "__main__":
    asyncio.run(main())
