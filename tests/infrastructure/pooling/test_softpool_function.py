import unittest

import numpy as np

from softpool.infrastructure._config import LaunchConfig
from softpool.infrastructure._context import Context
from softpool.infrastructure.ops.softpool_cpu import (
    softpool_backward_cpu,
    softpool_forward_cpu,
)
from softpool.infrastructure.pooling._softpool_function import (
    SoftPool1dFn,
    SoftPool2dFn,
    SoftPool3dFn,
    soft_pool1d,
    soft_pool2d,
    soft_pool3d,
)

SERIAL = LaunchConfig(num_workers=1)


class TestSoftPoolFunction(unittest.TestCase):
    def setUp(self) -> None:
        np.random.seed(0)

    def test_fn_forward_backward_match_ops_all_ranks(self):
        cases = [
            (SoftPool1dFn, 1, (2, 3, 10)),
            (SoftPool2dFn, 2, (2, 3, 6, 7)),
            (SoftPool3dFn, 3, (1, 2, 4, 5, 6)),
        ]
        for fn, rank, shape in cases:
            with self.subTest(fn=fn.__name__):
                x = np.random.randn(*shape).astype(np.float32)

                ctx = Context()
                y = fn.forward(ctx, x, kernel_size=3, stride=2, config=SERIAL)
                grad_out = np.random.randn(*y.shape).astype(np.float32)
                (gx,) = fn.backward(ctx, grad_out)

                y_ref = softpool_forward_cpu(x, rank, 3, 2, config=SERIAL)
                gx_ref = softpool_backward_cpu(grad_out, x, rank, 3, 2, config=SERIAL)

                np.testing.assert_array_equal(y, y_ref)
                np.testing.assert_allclose(gx, gx_ref, rtol=1e-6, atol=1e-7)
                self.assertEqual(gx.shape, x.shape)

    def test_forward_saves_input_and_meta(self):
        x = np.random.randn(1, 2, 4, 4)
        ctx = Context()
        SoftPool2dFn.forward(ctx, x, kernel_size=(2, 3))

        (saved,) = ctx.saved_tensors
        self.assertIs(saved, x)
        self.assertEqual(ctx.saved_meta["x_shape"], (1, 2, 4, 4))
        self.assertEqual(ctx.saved_meta["kernel_size"], (2, 3))
        self.assertEqual(ctx.saved_meta["stride"], (2, 3))
        self.assertFalse(ctx.saved_meta["unbatched"])

    def test_unbatched_input(self):
        x = np.random.randn(3, 8, 8)
        ctx = Context()
        y = SoftPool2dFn.forward(ctx, x, kernel_size=2, config=SERIAL)
        self.assertEqual(y.shape, (3, 4, 4))

        y_batched = SoftPool2dFn.forward(Context(), x[None], kernel_size=2)
        np.testing.assert_array_equal(y, y_batched[0])

        (gx,) = SoftPool2dFn.backward(ctx, np.ones_like(y))
        self.assertEqual(gx.shape, x.shape)

    def test_functional_wrappers(self):
        x1 = np.random.randn(1, 1, 8)
        x2 = np.random.randn(1, 1, 8, 8)
        x3 = np.random.randn(1, 1, 4, 4, 4)

        np.testing.assert_array_equal(
            soft_pool1d(x1), softpool_forward_cpu(x1, 1, 2, config=SERIAL)
        )
        np.testing.assert_array_equal(
            soft_pool2d(x2, 3, 1), softpool_forward_cpu(x2, 2, 3, 1, config=SERIAL)
        )
        self.assertEqual(soft_pool3d(x3).shape, (1, 1, 2, 2, 2))


if __name__ == "__main__":
    unittest.main()
