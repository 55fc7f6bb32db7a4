import unittest

import numpy as np

from improve.audio.frames import FrameAssembler
from improve.core.errors import ConfigurationError


class TestFrameAssembler(unittest.TestCase):
    def test_accumulates_until_a_frame_is_complete(self):
        assembler = FrameAssembler(4, sample_rate=4)
        self.assertEqual(assembler.push(np.arange(3), 0.0), [])
        self.assertEqual(assembler.pending, 3)

        frames = assembler.push(np.arange(3, 9), 0.75)
        self.assertEqual(len(frames), 2)
        np.testing.assert_array_equal(frames[0][0], [0, 1, 2, 3])
        np.testing.assert_array_equal(frames[1][0], [4, 5, 6, 7])
        # Timestamps follow the sample clock from the first chunk
        self.assertEqual([t for _, t in frames], [0.0, 1.0])
        self.assertEqual(assembler.pending, 1)

    def test_overlap(self):
        assembler = FrameAssembler(4, hop_size=2, sample_rate=2)
        frames = assembler.push(np.arange(8), 10.0)
        self.assertEqual([f.tolist() for f, _ in frames], [[0, 1, 2, 3], [2, 3, 4, 5], [4, 5, 6, 7]])
        self.assertEqual([t for _, t in frames], [10.0, 11.0, 12.0])

    def test_multichannel_is_mixed_to_mono(self):
        assembler = FrameAssembler(2)
        stereo = np.array([[1.0, 0.0], [0.5, 0.5]])
        frames = assembler.push(stereo, 0.0)
        np.testing.assert_allclose(frames[0][0], [0.5, 0.5])

    def test_reset(self):
        assembler = FrameAssembler(4)
        assembler.push(np.ones(3), 0.0)
        assembler.reset()
        self.assertEqual(assembler.pending, 0)

    def test_invalid_sizes(self):
        with self.assertRaises(ConfigurationError):
            FrameAssembler(0)
        with self.assertRaises(ConfigurationError):
            FrameAssembler(4, hop_size=5)


if __name__ == "__main__":
    unittest.main()
