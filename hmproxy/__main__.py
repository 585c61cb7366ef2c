import uvicorn

from hmproxy.vars import HOST, PORT


def main():
    uvicorn.run("hmproxy.server:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
