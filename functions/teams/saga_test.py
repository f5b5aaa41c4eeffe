# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import threading
import unittest

from teams.saga import SagaState, run_saga


class RunSagaTest(unittest.TestCase):

    def test_empty(self):
        result = run_saga("nothing", [])
        self.assertEqual(result.state, SagaState.EMPTY)
        self.assertEqual(result.as_dict()["failed"], {})

    def test_all_steps_succeed(self):
        done = []
        lock = threading.Lock()

        def step(key):
            def run():
                with lock:
                    done.append(key)

            return run

        result = run_saga("ok", [(key, step(key)) for key in ("a", "b", "c")])

        self.assertEqual(result.state, SagaState.COMPLETE)
        self.assertEqual(result.succeeded, ["a", "b", "c"])
        self.assertEqual(sorted(done), ["a", "b", "c"])

    def test_failure_does_not_stop_siblings(self):
        def fail():
            raise RuntimeError("boom")

        result = run_saga(
            "mixed", [("a", lambda: None), ("b", fail), ("c", lambda: None)]
        )

        self.assertEqual(result.state, SagaState.PARTIAL)
        self.assertEqual(result.succeeded, ["a", "c"])
        self.assertEqual(result.failed, ["b"])
        self.assertEqual(result.failure_count, 1)
        self.assertEqual(result.as_dict()["failed"], {"b": "boom"})

    def test_all_steps_fail(self):
        def fail():
            raise RuntimeError("boom")

        result = run_saga("bad", [("a", fail), ("b", fail)], max_workers=1)

        self.assertEqual(result.state, SagaState.FAILED)
        self.assertEqual(result.success_count, 0)


if __name__ == "__main__":
    unittest.main()
