import unittest


class TestInit(unittest.TestCase):
    def test_import(self):
        try:
            import etherstate
        except ImportError:
            self.fail("Failed to import etherstate")
        self.assertIn("EtherState", etherstate.__all__)


if __name__ == '__main__':
    unittest.main()
