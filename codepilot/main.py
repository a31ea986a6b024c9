import argparse

from fastapi import FastAPI

from codepilot.api.routes import router


app = FastAPI(title="codepilot Agent API", version="0.1.0")
app.include_router(router, prefix="/v1")


if __name__ == "__main__":
    import uvicorn

    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    uvicorn.run(app, host=args.host, port=args.port)
