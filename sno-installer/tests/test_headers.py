import os
import unittest

_PACKAGE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'snoinstaller')


def _source_files():
    for root, _dirs, files in os.walk(_PACKAGE_DIR):
        for name in files:
            if name.endswith('.py'):
                yield os.path.join(root, name)


class TestLicenseHeaders(unittest.TestCase):

    def test_every_module_carries_project_header(self):
        paths = list(_source_files())
        self.assertTrue(paths)
        for path in paths:
            with open(path) as fh:
                header = fh.read(1024)
            with self.subTest(path=path):
                self.assertIn('Part of the SNO Hub Installer homelab kit', header)
                self.assertIn('Copyright (C) 2026 The SNO Hub Installer contributors', header)
                self.assertIn('GNU General Public License', header)


if __name__ == '__main__':
    unittest.main()
