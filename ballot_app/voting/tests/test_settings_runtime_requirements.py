import os
import subprocess
import sys
import textwrap
import unittest
from pathlib import Path


def _run_settings_import(code: str, env: dict[str, str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-c", code],
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )


class TestSettingsRuntimeRequirements(unittest.TestCase):
    @staticmethod
    def _django_project_dir() -> Path:
        return Path(__file__).resolve().parents[2]

    def _base_env(self) -> dict[str, str]:
        env = os.environ.copy()
        for key in ("DATABASE_URL", "DATABASE_HOST", "SECRET_KEY", "ALLOWED_HOSTS"):
            env.pop(key, None)
        env["DEBUG"] = "0"
        return env

    def test_migrate_does_not_require_runtime_secrets(self) -> None:
        code = textwrap.dedent(
            f"""
            import sys

            sys.path.insert(0, {str(self._django_project_dir())!r})

            # Simulate `python manage.py migrate`.
            sys.argv = ["manage.py", "migrate", "--noinput"]
            import config.settings  # noqa: F401
            print("ok")
            """
        ).strip()

        result = _run_settings_import(code, self._base_env())

        self.assertEqual(
            result.returncode,
            0,
            msg=f"settings import failed:\nstdout:\n{result.stdout}\nstderr:\n{result.stderr}",
        )
        self.assertEqual(result.stdout.strip().splitlines()[-1], "ok")

    def test_web_runtime_still_requires_secret_key(self) -> None:
        env = self._base_env()
        env["ALLOWED_HOSTS"] = "vote.example.org"

        code = textwrap.dedent(
            f"""
            import sys

            sys.path.insert(0, {str(self._django_project_dir())!r})

            # Simulate a non-management runtime argv (e.g. gunicorn).
            sys.argv = ["gunicorn", "config.wsgi:application"]
            import config.settings  # noqa: F401
            print("unexpected")
            """
        ).strip()

        result = _run_settings_import(code, env)

        self.assertNotEqual(result.returncode, 0)
        self.assertIn("SECRET_KEY must be set in production", result.stderr)

    def test_database_host_env_vars_used_without_database_url(self) -> None:
        env = self._base_env()
        env.update(
            {
                "SECRET_KEY": "test-secret-key-not-insecure-37-chars",
                "ALLOWED_HOSTS": "vote.example.org",
                "DATABASE_HOST": "db.example.internal",
                "DATABASE_PORT": "5432",
                "DATABASE_NAME": "ballot",
                "DATABASE_USER": "ballot",
                "DATABASE_PASSWORD": "supersecret",
            }
        )

        code = textwrap.dedent(
            f"""
            import sys

            sys.path.insert(0, {str(self._django_project_dir())!r})
            sys.argv = ["gunicorn", "config.wsgi:application"]

            import config.settings as settings

            print(settings.DATABASES["default"]["ENGINE"], settings.DATABASES["default"]["HOST"])
            """
        ).strip()

        result = _run_settings_import(code, env)

        self.assertEqual(
            result.returncode,
            0,
            msg=f"settings import failed:\nstdout:\n{result.stdout}\nstderr:\n{result.stderr}",
        )
        self.assertEqual(
            result.stdout.strip().splitlines()[-1],
            "django.db.backends.postgresql db.example.internal",
        )

    def test_voting_settings_come_from_env(self) -> None:
        env = self._base_env()
        env.update(
            {
                "VOTING_DEVICE_SIGNAL_FIELDS": "user_agent,ip_address",
                "VOTING_TRUST_X_FORWARDED_FOR": "1",
            }
        )

        code = textwrap.dedent(
            f"""
            import sys

            sys.path.insert(0, {str(self._django_project_dir())!r})
            sys.argv = ["manage.py", "check"]

            import config.settings as settings

            print(settings.VOTING_DEVICE_SIGNAL_FIELDS, settings.VOTING_TRUST_X_FORWARDED_FOR)
            """
        ).strip()

        result = _run_settings_import(code, env)

        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertEqual(result.stdout.strip().splitlines()[-1], "['user_agent', 'ip_address'] True")
