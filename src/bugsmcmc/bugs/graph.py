"""
Model graph construction.

Turns a parsed ModelProgram plus data into an unrolled, checked graph:

1. Loops are unrolled into relation blocks (one row per loop iteration).
   Loop bounds must evaluate from data.
2. Left-hand-side indices are evaluated, array shapes are fixed (from data
   or from the largest index used) and every element is given one owner.
3. Every reference is checked: unknown variables, out-of-range constant
   indices and references to elements nobody defines are compile errors.
4. Deterministic elements are sorted topologically into evaluation stages.
5. Unobserved stochastic elements become the parameter vector, with their
   support bounds (distribution support intersected with truncation).

Everything here runs in NumPy; the JAX log density is built by compiler.py.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .syntax import Var, Range, Blank, UnaryOp, BinaryOp, Call, ForLoop, referenced_names
from .distributions import get_distribution, Distribution
from .evaluator import Evaluator, element_label
from ..error_handling import ModelCompileError

logger = logging.getLogger('bugsmcmc')

# Discrete parameters with at most this many support points use exact Gibbs
MAX_DISCRETE_SUPPORT = 100


@dataclass
class RelationBlock:
    """One relation unrolled over the iterations of its enclosing loops."""
    index: int
    relation: object
    loops: Dict[str, np.ndarray]
    n_rows: int
    target_flat: np.ndarray = None      # (n_rows,) flat index of the defined element
    dist: Optional[Distribution] = None
    observed: np.ndarray = None         # (n_rows,) bool, stochastic only
    lower: np.ndarray = None            # (n_rows,) support incl. truncation
    upper: np.ndarray = None
    trunc_lower: np.ndarray = None      # (n_rows,) truncation bounds, +-inf if absent
    trunc_upper: np.ndarray = None
    param_rows: np.ndarray = None       # rows that are parameters
    param_offset: int = 0

    @property
    def name(self) -> str:
        return self.relation.target.name

    @property
    def is_stochastic(self) -> bool:
        return self.relation.kind == 'stochastic'

    @property
    def truncated(self) -> bool:
        return self.relation.kind == 'stochastic' and self.relation.truncation is not None

    def loops_for(self, rows) -> Dict[str, np.ndarray]:
        return {k: v[rows] for k, v in self.loops.items()}


@dataclass
class Stage:
    """Rows of a deterministic block that share a topological level."""
    block: int
    rows: np.ndarray


@dataclass
class ModelGraph:
    shapes: Dict[str, Tuple[int, ...]]
    data: Dict[str, np.ndarray]
    const_env: Dict[str, np.ndarray]
    blocks: List[RelationBlock]
    stages: List[Stage]
    owner: Dict[str, np.ndarray]         # name -> (size,) block index, -1 if undefined
    param_names: List[str] = field(default_factory=list)
    param_var: List[str] = field(default_factory=list)
    param_flat: np.ndarray = None
    param_lower: np.ndarray = None
    param_upper: np.ndarray = None
    param_discrete: np.ndarray = None
    param_block: np.ndarray = None

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    def label(self, name, flat) -> str:
        return element_label(name, self.shapes[name], flat)

    def is_observed(self, name) -> np.ndarray:
        """(size,) bool mask of elements with data."""
        if name not in self.data:
            return np.zeros(int(np.prod(self.shapes[name])) if self.shapes[name] else 1, dtype=bool)
        return np.isfinite(np.ravel(self.data[name]))


def build_graph(program, data) -> ModelGraph:
    """
    Unroll and check a parsed model against its data.

    Args:
        program: ModelProgram from parse_model
        data: Mapping of name -> float ndarray (NaN marks missing values)

    Returns:
        ModelGraph

    Raises:
        ModelCompileError: For any structural problem in the model
    """
    defined = []
    for rel in program.relations():
        if rel.target.name not in defined:
            defined.append(rel.target.name)

    data_env = dict(data)
    blocks = []
    _unroll(program.statements, {}, 1, data_env, blocks)

    _check_distributions(blocks)
    shapes, index_rows = _resolve_shapes(blocks, data, defined)
    owner, owner_row = _assign_owners(blocks, index_rows, shapes)

    const_env = {}
    for name, value in data.items():
        const_env[name] = value
    for name, shape in shapes.items():
        if name not in data:
            const_env[name] = np.full(shape, np.nan)

    for block in blocks:
        if block.is_stochastic:
            if block.name in data:
                block.observed = np.isfinite(np.ravel(data[block.name])[block.target_flat])
            else:
                block.observed = np.zeros(block.n_rows, dtype=bool)
        elif block.name in data:
            supplied = np.isfinite(np.ravel(data[block.name])[block.target_flat])
            if np.any(supplied):
                flat = block.target_flat[np.argmax(supplied)]
                raise ModelCompileError(
                    f"Cannot supply data for deterministic node {element_label(block.name, shapes[block.name], flat)}",
                    node=block.name)

    # Deterministic elements are unknown until run time, observed stochastic
    # elements keep their data values
    for block in blocks:
        if not block.is_stochastic:
            arr = np.array(const_env[block.name], dtype=float)
            arr.reshape(-1)[block.target_flat] = np.nan
            const_env[block.name] = arr

    _check_references(blocks, const_env, defined)
    deps = _check_resolution(blocks, const_env, shapes, owner, owner_row, data)
    _check_widths(blocks, const_env)
    stages = _topological_stages(blocks, deps, shapes)

    graph = ModelGraph(shapes=shapes, data=data, const_env=const_env, blocks=blocks,
                       stages=stages, owner=owner)
    _layout_parameters(graph)
    _warn_unused(program, data, defined)
    return graph


# =============================================================================
# UNROLLING
# =============================================================================

def _unroll(statements, loops, n_rows, data_env, out):
    for stmt in statements:
        if isinstance(stmt, ForLoop):
            start = _loop_bound(stmt, stmt.start, 'lower', loops, n_rows, data_env)
            stop = _loop_bound(stmt, stmt.stop, 'upper', loops, n_rows, data_env)
            counts = np.maximum(stop - start + 1, 0)
            rows = np.repeat(np.arange(n_rows), counts)
            inner = {name: values[rows] for name, values in loops.items()}
            if len(rows):
                inner[stmt.counter] = np.concatenate(
                    [np.arange(a, b + 1) for a, b in zip(start, stop) if b >= a])
            else:
                inner[stmt.counter] = np.zeros(0, dtype=int)
            _unroll(stmt.body, inner, len(rows), data_env, out)
        elif n_rows > 0:
            out.append(RelationBlock(index=len(out), relation=stmt, loops=loops, n_rows=n_rows))


def _loop_bound(loop, expr, which, loops, n_rows, data_env):
    missing = referenced_names(expr) - set(loops) - set(data_env)
    message = f"Cannot evaluate {which} index of counter {loop.counter}"
    if missing:
        raise ModelCompileError(f"{message}: {', '.join(sorted(missing))} not supplied as data",
                                node=loop.counter)
    with np.errstate(all='ignore'):
        value = Evaluator(np, data_env, loops, n_rows, strict=True).evaluate(expr)
    if value.shape[-1] != 1 or not np.all(np.isfinite(value)):
        raise ModelCompileError(message, node=loop.counter)
    return np.round(value[:, 0]).astype(int)


# =============================================================================
# SHAPES AND OWNERSHIP
# =============================================================================

def _check_distributions(blocks):
    for block in blocks:
        rel = block.relation
        if not block.is_stochastic:
            continue
        try:
            dist = get_distribution(rel.dist)
        except KeyError:
            raise ModelCompileError(f"Unknown distribution {rel.dist} on line {rel.line}",
                                    node=rel.target.name) from None
        if len(rel.args) != dist.n_params:
            raise ModelCompileError(
                f"Distribution {rel.dist} expects {dist.n_params} parameter(s), "
                f"got {len(rel.args)} on line {rel.line}", node=rel.target.name)
        if rel.truncation is not None and not dist.can_truncate:
            raise ModelCompileError(f"Distribution {rel.dist} cannot be truncated",
                                    node=rel.target.name)
        block.dist = dist


def _lhs_indices(block, data_env):
    target = block.relation.target
    if target.indices is None:
        return np.zeros((block.n_rows, 0), dtype=int)
    columns = []
    for index in target.indices:
        if isinstance(index, (Range, Blank)):
            raise ModelCompileError(
                f"Vector-valued left-hand side {target.describe()} is not supported", node=target.name)
        missing = referenced_names(index) - set(block.loops) - set(data_env)
        if missing:
            raise ModelCompileError(
                f"Cannot evaluate index of {target.describe()}: {', '.join(sorted(missing))} not supplied",
                node=target.name)
        with np.errstate(all='ignore'):
            value = Evaluator(np, data_env, block.loops, block.n_rows).evaluate(index)
        if not np.all(np.isfinite(value)):
            raise ModelCompileError(f"Cannot evaluate index of {target.describe()}", node=target.name)
        columns.append(np.round(value[:, 0]).astype(int))
    return np.stack(columns, axis=1)


def _resolve_shapes(blocks, data, defined):
    index_rows = {}
    ndims = {}
    for block in blocks:
        idx = _lhs_indices(block, data)
        index_rows[block.index] = idx
        name = block.name
        ndims.setdefault(name, set()).add(idx.shape[1])
        if np.any(idx < 1):
            bad = idx[np.any(idx < 1, axis=1)][0]
            raise ModelCompileError(
                f"Index out of range for node {name}[{','.join(map(str, bad))}]", node=name)

    shapes = {}
    for name in defined:
        if name not in ndims:
            continue
        if len(ndims[name]) > 1:
            raise ModelCompileError(f"Inconsistent dimensions for variable {name}", node=name)
        ndim = next(iter(ndims[name]))
        rows = [index_rows[b.index] for b in blocks if b.name == name]
        if name in data:
            shape = tuple(np.shape(data[name]))
            if len(shape) != ndim:
                raise ModelCompileError(
                    f"Dimension mismatch between data and model for {name}: "
                    f"data has {len(shape)} dimension(s), model uses {ndim}", node=name)
            for idx in rows:
                over = np.any(idx > np.array(shape, dtype=int), axis=1)
                if np.any(over):
                    bad = idx[over][0]
                    raise ModelCompileError(
                        f"Index out of range for node {name}[{','.join(map(str, bad))}]", node=name)
        else:
            shape = tuple(int(v) for v in np.max(np.concatenate(rows, axis=0), axis=0)) if ndim else ()
        shapes[name] = shape

    for name, value in data.items():
        shapes.setdefault(name, tuple(np.shape(value)))
    return shapes, index_rows


def _assign_owners(blocks, index_rows, shapes):
    owner = {}
    owner_row = {}
    for block in blocks:
        name = block.name
        shape = shapes[name]
        size = int(np.prod(shape)) if shape else 1
        if name not in owner:
            owner[name] = np.full(size, -1, dtype=int)
            owner_row[name] = np.full(size, -1, dtype=int)
        idx = index_rows[block.index]
        if shape:
            flat = np.ravel_multi_index(tuple((idx - 1).T), shape)
        else:
            flat = np.zeros(block.n_rows, dtype=int)
        block.target_flat = flat

        values, counts = np.unique(flat, return_counts=True)
        clash = values[counts > 1]
        taken = flat[owner[name][flat] >= 0]
        if len(clash) or len(taken):
            first = clash[0] if len(clash) else taken[0]
            raise ModelCompileError(
                f"Attempt to redefine node {element_label(name, shape, first)}", node=name)
        owner[name][flat] = block.index
        owner_row[name][flat] = np.arange(block.n_rows)
    return owner, owner_row


# =============================================================================
# REFERENCE CHECKS
# =============================================================================

def _relation_exprs(rel):
    """Every right-hand-side expression of a relation (args, bounds, LHS indices)."""
    exprs = []
    if rel.kind == 'stochastic':
        exprs.extend(rel.args)
        if rel.truncation is not None:
            exprs.extend(e for e in (rel.truncation.lower, rel.truncation.upper) if e is not None)
    else:
        exprs.append(rel.expr)
    return exprs


def _var_refs(expr):
    """Yield every Var node in an expression, including those inside indices."""
    stack = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, Var):
            yield node
            if node.indices:
                stack.extend(node.indices)
        elif isinstance(node, Range):
            stack.extend([node.start, node.stop])
        elif isinstance(node, UnaryOp):
            stack.append(node.operand)
        elif isinstance(node, BinaryOp):
            stack.extend([node.left, node.right])
        elif isinstance(node, Call):
            stack.extend(node.args)


def _check_references(blocks, const_env, defined):
    for block in blocks:
        for expr in _relation_exprs(block.relation):
            for name in sorted(referenced_names(expr) - set(block.loops)):
                if name in const_env:
                    continue
                if name in defined:
                    raise ModelCompileError(f"Unable to resolve node {name}", node=name)
                raise ModelCompileError(
                    f"Unknown variable {name} on line {block.relation.line}", node=name)


def _check_resolution(blocks, const_env, shapes, owner, owner_row, data):
    """
    Check constant-index references and collect deterministic dependencies.

    Returns:
        Dict block index -> list of (row_array, dep_block, dep_row_array) edges
        for deterministic blocks.
    """
    deps = {}
    for block in blocks:
        edges = []
        ev = Evaluator(np, const_env, block.loops, block.n_rows, strict=True)
        for expr in _relation_exprs(block.relation):
            for ref in _var_refs(expr):
                name = ref.name
                if ref.indices is None and name in block.loops:
                    continue
                with np.errstate(all='ignore'):
                    flat = ev.flat_indices(ref)
                known = np.isfinite(flat)
                size = int(np.prod(shapes[name])) if shapes[name] else 1
                var_owner = owner.get(name, np.full(size, -1, dtype=int))
                var_row = owner_row.get(name, np.full(size, -1, dtype=int))
                observed = (np.isfinite(np.ravel(data[name])) if name in data
                            else np.zeros(size, dtype=bool))

                idx = flat[known].astype(int)
                unresolved = (var_owner[idx] < 0) & ~observed[idx]
                if np.any(unresolved):
                    missing = idx[unresolved][0]
                    raise ModelCompileError(
                        f"Unable to resolve node {element_label(name, shapes[name], missing)}",
                        node=name)

                if block.is_stochastic:
                    continue
                rows = np.broadcast_to(np.arange(block.n_rows)[:, None], flat.shape)
                row_k = rows[known]
                dep_blocks = var_owner[idx]
                is_det = dep_blocks >= 0
                for r, b, dr in zip(row_k[is_det], dep_blocks[is_det], var_row[idx][is_det]):
                    if not blocks[b].is_stochastic:
                        edges.append((r, b, dr))
                unknown_rows = np.unique(np.nonzero(~known)[0])
                if len(unknown_rows):
                    det_elems = [(b, dr) for b, dr in zip(var_owner, var_row)
                                 if b >= 0 and not blocks[b].is_stochastic]
                    for r in unknown_rows:
                        edges.extend((r, b, dr) for b, dr in det_elems)
        if not block.is_stochastic:
            deps[block.index] = edges
    return deps


def _check_widths(blocks, const_env):
    for block in blocks:
        rel = block.relation
        ev = Evaluator(np, const_env, block.loops, block.n_rows)
        with np.errstate(all='ignore'):
            if block.is_stochastic:
                for pos, arg in enumerate(rel.args):
                    width = ev.evaluate(arg).shape[-1]
                    if pos not in block.dist.vector_params and width != 1:
                        raise ModelCompileError(
                            f"Parameter {pos + 1} of {rel.dist} for {rel.target.describe()} must be scalar",
                            node=rel.target.name)
            elif ev.evaluate(rel.expr).shape[-1] != 1:
                raise ModelCompileError(
                    f"Deterministic relation for {rel.target.describe()} must be scalar-valued",
                    node=rel.target.name)


def _topological_stages(blocks, deps, shapes):
    """Order deterministic elements by level (Kahn's algorithm)."""
    det_blocks = [b for b in blocks if not b.is_stochastic]
    if not det_blocks:
        return []
    offsets = {}
    total = 0
    for b in det_blocks:
        offsets[b.index] = total
        total += b.n_rows
    node_block = np.concatenate([np.full(b.n_rows, b.index) for b in det_blocks])
    node_row = np.concatenate([np.arange(b.n_rows) for b in det_blocks])

    children = [[] for _ in range(total)]
    indegree = np.zeros(total, dtype=int)
    for b in det_blocks:
        for r, dep_block, dep_row in set(deps[b.index]):
            src = offsets[dep_block] + dep_row
            dst = offsets[b.index] + r
            children[src].append(dst)
            indegree[dst] += 1

    level = np.zeros(total, dtype=int)
    queue = list(np.nonzero(indegree == 0)[0])
    done = 0
    while queue:
        node = queue.pop()
        done += 1
        for child in children[node]:
            level[child] = max(level[child], level[node] + 1)
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)
    if done < total:
        stuck = np.nonzero(indegree > 0)[0][:5]
        names = [element_label(blocks[node_block[n]].name, shapes[blocks[node_block[n]].name],
                               blocks[node_block[n]].target_flat[node_row[n]]) for n in stuck]
        raise ModelCompileError(f"Directed cycle among deterministic nodes: {', '.join(names)}",
                                node=names[0])

    stages = []
    for lvl in range(int(level.max()) + 1):
        for b in det_blocks:
            sel = offsets[b.index] + np.arange(b.n_rows)
            rows = node_row[sel][level[sel] == lvl]
            if len(rows):
                stages.append(Stage(block=b.index, rows=rows))
    return stages


# =============================================================================
# PARAMETERS
# =============================================================================

def _constant_bound(block, expr, const_env, default):
    if expr is None:
        return np.full(block.n_rows, default)
    with np.errstate(all='ignore'):
        value = Evaluator(np, const_env, block.loops, block.n_rows).evaluate(expr)[:, 0]
    if not np.all(np.isfinite(value)):
        raise ModelCompileError(
            f"Truncation bounds for {block.relation.target.describe()} must be constants",
            node=block.name)
    return value


def _layout_parameters(graph):
    names, var, flat, lower, upper, discrete, owner_block = [], [], [], [], [], [], []
    offset = 0
    for block in graph.blocks:
        if not block.is_stochastic:
            continue
        rel = block.relation
        ev = Evaluator(np, graph.const_env, block.loops, block.n_rows)
        with np.errstate(all='ignore'):
            args = []
            for pos, arg in enumerate(rel.args):
                value = ev.evaluate(arg)
                args.append(value if pos in block.dist.vector_params else value[:, 0])
            lo, hi = block.dist.support(*args)
        lo = np.broadcast_to(np.asarray(lo, dtype=float), (block.n_rows,))
        hi = np.broadcast_to(np.asarray(hi, dtype=float), (block.n_rows,))

        trunc = rel.truncation
        block.trunc_lower = _constant_bound(block, trunc.lower if trunc else None, graph.const_env, -np.inf)
        block.trunc_upper = _constant_bound(block, trunc.upper if trunc else None, graph.const_env, np.inf)
        block.lower = np.maximum(lo, block.trunc_lower)
        block.upper = np.minimum(hi, block.trunc_upper)

        block.param_rows = np.nonzero(~block.observed)[0]
        block.param_offset = offset
        if len(block.param_rows) == 0:
            continue
        rows = block.param_rows
        if np.any(np.isnan(block.lower[rows])) or np.any(np.isnan(block.upper[rows])):
            raise ModelCompileError(
                f"Support of {rel.target.describe()} depends on unknown parameters; "
                f"its bounds must be constants", node=block.name)
        if np.any(block.lower[rows] >= block.upper[rows]) and not block.dist.discrete:
            raise ModelCompileError(f"Empty support for {rel.target.describe()}", node=block.name)
        for r in rows:
            names.append(graph.label(block.name, block.target_flat[r]))
        var.extend([block.name] * len(rows))
        flat.append(block.target_flat[rows])
        lower.append(block.lower[rows])
        upper.append(block.upper[rows])
        discrete.append(np.full(len(rows), block.dist.discrete))
        owner_block.append(np.full(len(rows), block.index))
        offset += len(rows)

    graph.param_names = names
    graph.param_var = var
    cat = (lambda parts, dtype: np.concatenate(parts).astype(dtype) if parts else np.zeros(0, dtype=dtype))
    graph.param_flat = cat(flat, int)
    graph.param_lower = cat(lower, float)
    graph.param_upper = cat(upper, float)
    graph.param_discrete = cat(discrete, bool)
    graph.param_block = cat(owner_block, int)


def _warn_unused(program, data, defined):
    used = set(defined)
    stack = list(program.statements)
    while stack:
        stmt = stack.pop()
        if isinstance(stmt, ForLoop):
            used |= referenced_names(stmt.start) | referenced_names(stmt.stop)
            stack.extend(stmt.body)
        else:
            for expr in _relation_exprs(stmt):
                used |= referenced_names(expr)
            used |= referenced_names(stmt.target)
    for name in data:
        if name not in used:
            logger.warning(f"Unused variable \"{name}\" in data")
