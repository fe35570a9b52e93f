"""
Output layer: word (and, for positional models, alignment) softmax on top of the stacked
LSTM. Consumes the top-hidden cache of one call, returns the summed negative log-likelihood
and the gradient flowing back into top hidden states and source hidden states.
"""

import numpy as np

from . import shared
from .params import uses_output_projection
from .positional import alignment_classes

# Output-layer weight gradients, enumerated once; merged into Gradients by name.
SOFTMAX_SLOTS = ("W_soft", "W_soft_pos", "W_h")


def _nll(probs: np.ndarray, labels: np.ndarray, rows: np.ndarray) -> float:
    return float(-np.log(probs[labels[rows], rows]).sum())


def _nll_grad(probs: np.ndarray, labels: np.ndarray, info) -> np.ndarray:
    """d(-log p[label]) / d logits, zero for padded columns."""
    d_logits = probs.copy()
    d_logits[labels[info.unmasked_ids], info.unmasked_ids] -= 1.0
    d_logits[:, info.masked_ids] = 0
    return d_logits


def attention_weights(h_t: np.ndarray, src: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Dot-product alignment of h_t (H, B) against src (H, B, N), restricted to valid (B, N)."""
    scores = np.einsum("hb,hbn->bn", h_t, src)
    scores = np.where(valid, scores, -np.inf)
    scores = scores - scores.max(axis=1, keepdims=True)
    weights = np.exp(scores)
    return weights / weights.sum(axis=1, keepdims=True)


class SoftmaxLayer:
    """Default output layer. cost_grad() follows the external oracle contract of the driver."""

    def cost_grad(self, model: dict, params: dict, ctx, is_test: bool = False):
        """Returns (costs, grads, other).

        costs: {"total"} plus {"word", "pos"} for positional models.
        grads: output-layer weight gradients keyed by SOFTMAX_SLOTS (None if is_test).
        other: {"ht": (H, B, T), "src_hid_vecs": (H, B, N) or None,
                "emb_indices": (n,), "emb_grads": (n, H)} (None if is_test).
        """
        H, B, T = ctx.top_hid.shape
        t_dec = ctx.src_max_len - 1
        positional_mode = params["positional_mode"]
        project = uses_output_projection(params)
        W_soft = model["W_soft"]

        grads = other = None
        if not is_test:
            grads = {"W_soft": np.zeros_like(W_soft)}
            if project:
                grads["W_h"] = np.zeros_like(model["W_h"])
            if positional_mode > 0:
                grads["W_soft_pos"] = np.zeros_like(model["W_soft_pos"])
            d_src = None
            if ctx.num_src_hid_vecs > 0:
                d_src = np.zeros((H, B, ctx.num_src_hid_vecs), dtype=ctx.dtype)
            other = {
                "ht": np.zeros((H, B, T), dtype=ctx.dtype),
                "src_hid_vecs": d_src,
                "emb_indices": [],
                "emb_grads": [],
            }

        valid = None
        if params["attention"]:
            n_src = ctx.num_src_hid_vecs
            valid = np.arange(n_src)[np.newaxis, :] >= ctx.src_starts[:, np.newaxis]
            # rows without any source token attend uniformly (they are padding anyway)
            valid[~valid.any(axis=1)] = True

        word_cost = 0.0
        for t in range(t_dec, T):
            offset = t - t_dec
            info = ctx.mask_info[t]
            labels = ctx.batch.tgt_output[:, offset]
            h_t = ctx.top_hid[:, :, t]

            if params["attention"]:
                a_t = attention_weights(h_t, ctx.src_hid_vecs, valid)
                s_t = np.einsum("bn,hbn->hb", a_t, ctx.src_hid_vecs)
            elif positional_mode == 3:
                s_t = ctx.src_pos_vecs[:, :, offset]
            if project:
                z_t = np.concatenate([s_t, h_t], axis=0)
                feature = np.tanh(model["W_h"] @ z_t)
            else:
                feature = h_t

            probs = shared.softmax_cols(W_soft @ feature)
            word_cost += _nll(probs, labels, info.unmasked_ids)
            if is_test:
                continue

            d_logits = _nll_grad(probs, labels, info)
            grads["W_soft"] += d_logits @ feature.T
            d_feature = W_soft.T @ d_logits
            if not project:
                other["ht"][:, :, t] += d_feature
                continue

            d_pre = d_feature * (1.0 - feature * feature)
            grads["W_h"] += d_pre @ z_t.T
            d_z = model["W_h"].T @ d_pre
            d_s, d_h = d_z[:H], d_z[H:]
            if params["attention"]:
                src = ctx.src_hid_vecs
                d_a = np.einsum("hb,hbn->bn", d_s, src)
                d_scores = a_t * (d_a - (a_t * d_a).sum(axis=1, keepdims=True))
                d_h = d_h + np.einsum("bn,hbn->hb", d_scores, src)
                other["src_hid_vecs"] += np.einsum("bn,hb->hbn", a_t, d_s)
                other["src_hid_vecs"] += np.einsum("bn,hb->hbn", d_scores, h_t)
            else:
                self._route_copy_grad(ctx, offset, d_s, other, params)
            other["ht"][:, :, t] += d_h

        costs = {"total": word_cost}
        if positional_mode > 0:
            pos_cost = self._position_cost_grad(model, params, ctx, is_test, grads, other)
            costs = {"total": word_cost + pos_cost, "word": word_cost, "pos": pos_cost}
        if is_test:
            return costs, None, None

        if other["emb_indices"]:
            other["emb_indices"] = np.concatenate(other["emb_indices"])
            other["emb_grads"] = np.concatenate(other["emb_grads"], axis=0)
        else:
            other["emb_indices"] = np.zeros(0, dtype=np.intp)
            other["emb_grads"] = np.zeros((0, H), dtype=ctx.dtype)
        return costs, grads, other

    def _route_copy_grad(self, ctx, offset: int, d_s: np.ndarray, other: dict, params: dict) -> None:
        """Copy mode: the source vector of a row was a source hidden state or a special embedding."""
        side = ctx.side_data[offset]
        shared.scatter_columns(other["src_hid_vecs"], d_s, side.pos_ids, side.col_indices)
        special = np.concatenate([side.null_ids, side.eos_ids])
        other["emb_indices"].append(np.concatenate([
            np.full(side.null_ids.shape[0], params["null_pos_id"], dtype=np.intp),
            np.full(side.eos_ids.shape[0], params["eos_pos_id"], dtype=np.intp),
        ]))
        other["emb_grads"].append(d_s[:, special].T)

    def _position_cost_grad(self, model, params, ctx, is_test, grads, other) -> float:
        """Predict the alignment class of decoder offset k from the top hidden state at t - 1.
        Offset 0 is predicted from the last source timestep."""
        W_pos = model["W_soft_pos"]
        t_dec = ctx.src_max_len - 1
        cost = 0.0
        for t in range(t_dec, ctx.num_timesteps):
            offset = t - t_dec
            info = ctx.mask_info[t]
            labels = alignment_classes(
                ctx.batch.src_pos[:, offset], ctx.src_starts, ctx.src_max_len, params["source_max_len"]
            )
            h_prev = ctx.top_hid[:, :, t - 1]
            probs = shared.softmax_cols(W_pos @ h_prev)
            cost += _nll(probs, labels, info.unmasked_ids)
            if is_test:
                continue
            d_logits = _nll_grad(probs, labels, info)
            grads["W_soft_pos"] += d_logits @ h_prev.T
            other["ht"][:, :, t - 1] += W_pos.T @ d_logits
        return cost
