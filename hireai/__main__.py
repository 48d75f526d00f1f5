"""Run the HireAI API server: ``python -m hireai``"""
import uvicorn

from hireai import config


def main():
    uvicorn.run("hireai.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
