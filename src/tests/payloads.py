# Response fixtures for fingerprint and probe tests

TARGET = "https://example.com/"

NEXT_RSC_HTML = (
    '<html><head><script src="/_next/static/aBcD1234/_buildManifest.js"></script></head>'
    '<body><div id="__next"></div><script>(self.__next_f=self.__next_f||[]).push([0])</script></body></html>'
)
NEXT_PAGES_HTML = (
    '<html><body><script id="__NEXT_DATA__" type="application/json">{"props":{}}</script>'
    '<script src="/_next/static/chunks/main.js"></script></body></html>'
)
REMIX_HTML = '<html><body><script>window.__remixContext = {"state":{}};</script></body></html>'
PLAIN_HTML = "<html><head><title>Hello</title></head><body>Nothing to see</body></html>"
DIGEST_BODY = '0:{"a":"$@1"}\n1:E{"digest":"2971658870"}\n'


def post_calls(rsps):
    return [call for call in rsps.calls if call.request.method == "POST"]
