from reports_web.app_factory import create_app


def main() -> None:
    app = create_app()
    # the reloader would start a second scheduler thread
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"], use_reloader=False)


if __name__ == "__main__":
    main()
