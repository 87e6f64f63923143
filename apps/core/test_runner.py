import shutil
import tempfile
from pathlib import Path

from django.apps import apps
from django.test.runner import DiscoverRunner
from django.test.utils import override_settings


class InstalledAppsOnlyDiscoverRunner(DiscoverRunner):
    """Run project app tests only, with uploads and receipts kept in a scratch directory."""

    def setup_test_environment(self, **kwargs):
        super().setup_test_environment(**kwargs)
        self._scratch_dir = Path(tempfile.mkdtemp(prefix='tabungan_tests_'))
        self._storage_override = override_settings(
            MEDIA_ROOT=self._scratch_dir / 'media',
            TABUNGAN_STORAGE_DIR=self._scratch_dir / 'storage',
        )
        self._storage_override.enable()

    def teardown_test_environment(self, **kwargs):
        self._storage_override.disable()
        shutil.rmtree(self._scratch_dir, ignore_errors=True)
        super().teardown_test_environment(**kwargs)

    def build_suite(self, test_labels=None, **kwargs):
        if not test_labels:
            names = [
                app_config.name
                for app_config in apps.get_app_configs()
                if app_config.name.startswith('apps.')
            ]
            # apps.core already discovers the apps nested under it.
            test_labels = [
                name for name in names
                if not any(name.startswith(f'{other}.') for other in names)
            ]
        return super().build_suite(test_labels=test_labels, **kwargs)
