import os

import uvicorn


def main():
  uvicorn.run(
    "expo_updates.main:create_app",
    factory=True,
    host=os.getenv("HOST", "0.0.0.0"),
    port=int(os.getenv("PORT", "3000")),
  )


if __name__ == "__main__":
  main()
