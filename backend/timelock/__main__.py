import os

import uvicorn


def main():
    uvicorn.run(
        "timelock.main:app",
        host=os.getenv("TIMELOCK_HOST", "127.0.0.1"),
        port=int(os.getenv("TIMELOCK_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
