import asyncio
import json
import logging
import nodriver
from nodriverintercept import RequestInterceptor

logging.basicConfig(level=logging.INFO)
logging.getLogger("nodriverintercept").setLevel(logging.DEBUG)

URL = "https://example.com"

# serve /api/* from memory; earlier handlers get first refusal
async def fake_api(request):
    if "/api/" not in request.url:
        await request.continue_()
        return
    await request.fulfill(
        status=200,
        headers={"Content-Type": "application/json"},
        body=json.dumps({"mocked": True, "url": request.url}),
    )

# everything that reaches here goes out with an extra header
def tag_requests(request):
    headers = dict(request.headers)
    headers["X-Intercepted"] = "1"
    request.defer_to_browser(headers=headers)

async def main():
    browser = await nodriver.start(headless=True)
    tab = await browser.get("about:blank")
    interceptor = RequestInterceptor(tab, url_patterns=["*"])
    interceptor.add_handler(fake_api)
    interceptor.add_handler(tag_requests)
    await interceptor.start()
    await tab.get(URL)
    await tab.evaluate("fetch('/api/ping').then(r => r.json())", await_promise=True)
    await interceptor.stop()
    browser.stop()

if __name__ == "__main__":
    asyncio.run(main())
