import sys
from invoke import task
from pathlib import Path

# Get project root directory
PROJECT_ROOT = Path(__file__).parent.absolute()


def project_relative(path):
    """Convert a relative path to an absolute path relative to the project root."""
    return str(PROJECT_ROOT / path)


def import_db_name():
    """Import database name from Django settings."""
    sys.path.insert(0, str(PROJECT_ROOT))
    from smkc.settings import DATABASES
    return DATABASES['default']['NAME']


@task
def install(c):
    """Install the project in editable mode with the test extra."""
    c.run(f"pip install -e {PROJECT_ROOT}[test]")


@task
def dbpath(c):
    """Print the path of the sqlite database."""
    print(import_db_name())


@task
def migrate(c):
    """Run Django database migrations."""
    manage_py = project_relative("manage.py")
    c.run(f"python {manage_py} migrate")


@task
def makemigrations(c):
    """Create new Django migrations."""
    manage_py = project_relative("manage.py")
    c.run(f"python {manage_py} makemigrations")


@task
def shell(c):
    """Start Django shell."""
    manage_py = project_relative("manage.py")
    c.run(f"python {manage_py} shell")


@task
def test(c, path=None):
    """Run the test suite with pytest. Optionally specify a specific test path."""
    if path:
        c.run(f"pytest {path}")
    else:
        c.run("pytest")


@task
def djangotest(c, path=None):
    """Run the tests through Django's test runner."""
    manage_py = project_relative("manage.py")
    target = path or "smkc"
    c.run(f"python {manage_py} test {target} --settings=smkc.test_settings")


@task
def seed(c, players=24, promote="none", seed=None):
    """Seed a Time-Attack tournament (see the seed_time_attack command)."""
    manage_py = project_relative("manage.py")
    args = f"--players {players} --promote {promote}"
    if seed is not None:
        args += f" --seed {seed}"
    c.run(f"python {manage_py} seed_time_attack {args}")
