"""Dev server launcher."""


def main() -> None:
    """Run the dev server."""
    from vulnrouter.main import run

    run()


if __name__ == "__main__":
    main()
