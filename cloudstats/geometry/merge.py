"""
Merge Operator

Appends one point cloud to another while keeping the per-point attribute
invariant: normals (and, independently, colors) survive only if every
point of the result can carry one. Partial coverage resolves to "absent".
"""

import numpy as np


def _merged_attribute(target_attr, source_attr, old_n, add_n, keep):
    if not keep:
        return np.zeros((0, 3))
    merged = np.empty((old_n + add_n, 3))
    merged[:old_n] = target_attr[:old_n]
    merged[old_n:] = source_attr[:add_n]
    return merged


def merge_into(target, source):
    """
    Append ``source``'s points to ``target`` in place and return ``target``.

    Normals are kept iff (target is empty or has normals) and source has
    normals; otherwise they are cleared. Colors follow the same rule
    independently. Merging an empty source is a no-op.

    Every output buffer is allocated at its final size and filled from the
    arrays as they were before the merge, so ``merge_into(a, a)`` is safe.
    Device mirrors of ``target`` are released before its arrays change size.
    """
    if source.is_empty():
        return target

    old_n = len(target.points)
    add_n = len(source.points)

    keep_normals = (not target.has_points() or target.has_normals()) and source.has_normals()
    keep_colors = (not target.has_points() or target.has_colors()) and source.has_colors()

    # snapshot every input before the target is rebound (source may be target)
    src_points, src_normals, src_colors = source.points, source.normals, source.colors
    tgt_points, tgt_normals, tgt_colors = target.points, target.normals, target.colors

    points = np.empty((old_n + add_n, 3))
    points[:old_n] = tgt_points
    points[old_n:] = src_points
    normals = _merged_attribute(tgt_normals, src_normals, old_n, add_n, keep_normals)
    colors = _merged_attribute(tgt_colors, src_colors, old_n, add_n, keep_colors)

    target.release_device_memory()
    target.set_arrays(points, normals, colors)
    return target


def merge(a, b):
    """Return a new cloud holding ``a`` followed by ``b``; inputs are untouched."""
    return merge_into(a.copy(), b)
