from greeting_service.config import ServiceSettings
from greeting_service.server import serve


def main() -> None:
    serve(ServiceSettings())


if __name__ == "__main__":
    # Run the service when called as a module
    main()
