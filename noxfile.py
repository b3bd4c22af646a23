import nox

nox.needs_version = ">=2024.4.15"
nox.options.default_venv_backend = "uv|virtualenv"


@nox.session
@nox.parametrize("editable", [True, False])
def tests(session: nox.Session, editable: bool) -> None:
    session.install("-e.[test]" if editable else ".[test]")
    session.run("pytest", "--cov-report", "term-missing", "--cov", "multipart_body", "tests", *session.posargs)


@nox.session
def installed_layout(session: nox.Session) -> None:
    session.install(".")
    # Run outside the checkout so only installed packages are importable.
    session.chdir(session.create_tmp())
    # Only the library is installed, not the tests or fuzz harnesses.
    session.run(
        "python",
        "-c",
        "import multipart_body, importlib.util; assert importlib.util.find_spec('tests') is None",
        silent=True,
    )
