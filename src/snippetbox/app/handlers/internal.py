from aiohttp import web


async def handle_ping(request: web.Request):
    return web.Response(status=200, text="OK")
