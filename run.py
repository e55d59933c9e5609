"""Project root entry point for launching the translation API."""

from __future__ import annotations


def main():
    from json_translator.web import create_app

    app = create_app()
    app.run(host="0.0.0.0", port=5500, debug=True)


if __name__ == "__main__":
    main()
