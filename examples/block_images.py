import asyncio
import nodriver
from nodriverintercept import RequestInterceptor

URL = "https://example.com"

# drop images, let everything else through untouched
def no_images(request):
    if request.resource_type == "Image":
        request.abort()
    else:
        request.continue_()

async def main():
    browser = await nodriver.start(headless=True)
    tab = await browser.get("about:blank")
    interceptor = RequestInterceptor(tab, [no_images])
    await interceptor.start()
    await tab.get(URL)
    await tab.wait(2)
    await interceptor.stop()
    browser.stop()

if __name__ == "__main__":
    asyncio.run(main())
