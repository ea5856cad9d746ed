import threading
import time
import unittest

from snoinstaller.lib.process import (
    Cancellation,
    CancelledException,
    CommandFailedException,
    run_command,
)


class TestCancellation(unittest.TestCase):

    def test_check_passes_until_cancelled(self):
        cancel = Cancellation()
        cancel.check()
        cancel.cancel("received SIGINT")
        with self.assertRaises(CancelledException) as ctx:
            cancel.check()
        self.assertEqual(str(ctx.exception), "Cancelled: received SIGINT")

    def test_sleep_returns_when_not_cancelled(self):
        Cancellation().sleep(0)

    def test_sleep_is_interrupted(self):
        cancel = Cancellation()
        timer = threading.Timer(0.1, cancel.cancel, ["test"])
        timer.start()
        started_at = time.monotonic()
        with self.assertRaises(CancelledException):
            cancel.sleep(30)
        self.assertLess(time.monotonic() - started_at, 10)
        timer.join()


class TestRunCommand(unittest.TestCase):

    def test_returns_combined_output(self):
        output = run_command(['sh', '-c', 'echo out; echo err >&2'], Cancellation())
        self.assertEqual(sorted(output.split()), ['err', 'out'])

    def test_passes_environment(self):
        output = run_command(['sh', '-c', 'echo $KUBECONFIG'], Cancellation(), env={'KUBECONFIG': '/tmp/kc'})
        self.assertEqual(output.strip(), '/tmp/kc')

    def test_undecodable_output(self):
        output = run_command(['sh', '-c', "printf 'ok \\377\\376 done\\n'"], Cancellation())
        self.assertTrue(output.startswith('ok '))
        self.assertTrue(output.endswith(' done\n'))
        self.assertIn('\ufffd', output)

    def test_undecodable_output_of_failed_command(self):
        with self.assertRaises(CommandFailedException) as ctx:
            run_command(['sh', '-c', "printf '\\377'; exit 2"], Cancellation())
        self.assertEqual(ctx.exception.returncode, 2)
        self.assertEqual(ctx.exception.output, '\ufffd')

    def test_nonzero_exit(self):
        with self.assertRaises(CommandFailedException) as ctx:
            run_command(['sh', '-c', 'echo broken; exit 3'], Cancellation())
        self.assertEqual(ctx.exception.returncode, 3)
        self.assertEqual(ctx.exception.output.strip(), 'broken')
        self.assertIn('exit code 3', str(ctx.exception))

    def test_missing_binary(self):
        with self.assertRaises(CommandFailedException) as ctx:
            run_command(['/nonexistent/openshift-install', 'version'], Cancellation())
        self.assertIsNone(ctx.exception.returncode)
        self.assertIn('/nonexistent/openshift-install', str(ctx.exception))

    def test_cancelled_before_start(self):
        cancel = Cancellation()
        cancel.cancel("test")
        with self.assertRaises(CancelledException):
            run_command(['sh', '-c', 'exit 0'], cancel)

    def test_cancel_terminates_child(self):
        cancel = Cancellation()
        timer = threading.Timer(0.2, cancel.cancel, ["test"])
        timer.start()
        started_at = time.monotonic()
        with self.assertRaises(CancelledException):
            run_command(['sleep', '30'], cancel, poll_interval=0.05)
        self.assertLess(time.monotonic() - started_at, 10)
        timer.join()


if __name__ == '__main__':
    unittest.main()
