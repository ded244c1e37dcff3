"""Materialize a subtree of the remote namespace.

The remote only answers per-node questions (read one secret, list one
folder), so building a tree takes many requests whose shape is discovered
along the way. A small pool of worker threads pops work orders from a
shared queue, talks to the remote, appends what it found to the parent
node and pushes follow-up orders for every new child.

"""
import enum
import io
import logging
import os
import queue
import threading
from collections import deque

import py.io

from safe import NotFound
from safe.path import canonicalize

logger = logging.getLogger(__name__)

#: More concurrent callers rarely help: remote calls dominate and the
#: remote is usually rate limited.
MAX_WORKERS = 3


class NodeKind(enum.Enum):
    ROOT = "root"
    DIR = "dir"
    SECRET = "secret"
    DIR_AND_SECRET = "dir-and-secret"
    KEY = "key"


class OpKind(enum.Enum):
    NONE = "none"
    LIST = "list"
    GET = "get"
    LIST_AND_GET = "list-and-get"
    MOUNTS = "mounts"


_WORK_TYPES = {
    (NodeKind.ROOT, False): OpKind.MOUNTS,
    (NodeKind.ROOT, True): OpKind.MOUNTS,
    (NodeKind.DIR, False): OpKind.LIST,
    (NodeKind.DIR, True): OpKind.LIST,
    (NodeKind.DIR_AND_SECRET, False): OpKind.LIST,
    (NodeKind.DIR_AND_SECRET, True): OpKind.LIST_AND_GET,
    (NodeKind.SECRET, False): OpKind.NONE,
    (NodeKind.SECRET, True): OpKind.GET,
    (NodeKind.KEY, False): OpKind.NONE,
    (NodeKind.KEY, True): OpKind.NONE,
}


def work_type(kind, fetch_keys):
    """Return the remote operation a node of `kind` still needs."""
    return _WORK_TYPES[kind, bool(fetch_keys)]


def default_workers():
    return min(max(os.cpu_count() or 1, 1), MAX_WORKERS)


_STYLES = {
    NodeKind.ROOT: {"cyan": True},
    NodeKind.DIR: {"blue": True},
    NodeKind.DIR_AND_SECRET: {"blue": True},
    NodeKind.SECRET: {"green": True},
    NodeKind.KEY: {"yellow": True},
}


class Tree(object):
    """A node of the materialized namespace.

    Folders (`DIR`, `DIR_AND_SECRET`) carry a trailing slash in their name,
    keys are named `<secret>:<field>` and hold the field in `value`.

    """

    def __init__(self, name, kind, value="", children=None):
        self.name = name
        self.kind = kind
        self.value = value
        self.children = children if children is not None else []

    def __repr__(self):
        return "<Tree {} {!r} ({} children)>".format(
            self.kind.value, self.name, len(self.children))

    def basename(self):
        if self.kind is NodeKind.ROOT:
            return "/"
        if self.kind is NodeKind.KEY:
            return ":" + self.name.rpartition(":")[2]
        last = self.name.rstrip("/").rpartition("/")[2]
        if self.kind in (NodeKind.DIR, NodeKind.DIR_AND_SECRET):
            return last + "/"
        return last

    def depth_first_walk(self, fn):
        """Call `fn` on every node below this one, in pre-order."""
        for child in self.children:
            fn(child)
            child.depth_first_walk(fn)

    def paths(self):
        """Return the names of all leaves, in pre-order."""
        if not self.children:
            return [] if self.kind is NodeKind.ROOT else [self.name]
        result = []
        for child in self.children:
            result.extend(child.paths())
        return result

    def secrets(self):
        """Return the paths of all secrets below this node."""
        result = []

        def collect(node):
            if node.kind in (NodeKind.SECRET, NodeKind.DIR_AND_SECRET):
                result.append(node.name.rstrip("/"))

        self.depth_first_walk(collect)
        return result

    def render(self, colour=False, show_keys=True):
        """Draw the tree.

        Terminal secrets are left out unless `show_keys` is set.

        """
        tw = py.io.TerminalWriter(file=io.StringIO())
        tw.hasmarkup = colour
        lines = [tw.markup(self.name, **_STYLES[NodeKind.ROOT])]
        self._render_children(tw, lines, "", show_keys)
        return "\n".join(lines) + "\n"

    def _render_children(self, tw, lines, prefix, show_keys):
        visible = [
            child for child in self.children
            if show_keys or child.children or child.kind is not NodeKind.SECRET
        ]
        for i, child in enumerate(visible):
            last = i == len(visible) - 1
            connector = "└── " if last else "├── "
            lines.append(
                prefix + connector
                + tw.markup(child.basename(), **_STYLES[child.kind]))
            child._render_children(
                tw, lines, prefix + ("    " if last else "│   "), show_keys)


class WorkOrder(object):
    """Explore `path` with `operation`, appending results to `insert_into`.

    `insert_into` is the `children` list of the node at `path`.

    """

    __slots__ = ("insert_into", "path", "operation")

    def __init__(self, insert_into, path, operation):
        self.insert_into = insert_into
        self.path = path
        self.operation = operation

    def __repr__(self):
        return "<WorkOrder {} {!r}>".format(self.operation.value, self.path)


class WorkQueue(object):
    """A FIFO of work orders that detects its own termination.

    The workers popping orders are also the only ones pushing new orders,
    so nobody outside can tell when exploration is complete. `awake`
    counts the workers that are not parked inside `pop()`. Once it drops
    to zero while the queue is empty, no further order can ever arrive:
    the queue closes itself and releases every worker.

    """

    def __init__(self, workers):
        self._orders = deque()
        self._cond = threading.Condition()
        self.workers = workers
        self.awake = workers
        self.closed = False

    def __len__(self):
        with self._cond:
            return len(self._orders)

    def push(self, order):
        with self._cond:
            if self.closed:
                return
            self._orders.append(order)
            self._cond.notify()

    def pop(self):
        """Return `(order, done)`. Blocks while others may still push."""
        with self._cond:
            self.awake -= 1
            while True:
                if self.closed:
                    return None, True
                if self._orders:
                    self.awake += 1
                    return self._orders.popleft(), False
                if self.awake == 0:
                    logger.debug("All workers idle, closing work queue.")
                    self.closed = True
                    self._cond.notify_all()
                    return None, True
                self._cond.wait()

    def close(self):
        with self._cond:
            if not self.closed:
                self.closed = True
                self._cond.notify_all()


class TreeWorker(threading.Thread):
    """Execute work orders until the queue reports it is done.

    Exactly one value is put on `errors` per worker: the exception that
    stopped it, or None.

    """

    def __init__(self, client, orders, errors, fetch_keys, name=None):
        self.client = client
        self.orders = orders
        self.errors = errors
        self.fetch_keys = fetch_keys
        super(TreeWorker, self).__init__(name=name, daemon=True)

    def run(self):
        logger.debug("%s started", self.name)
        order, done = self.orders.pop()
        while not done:
            try:
                found = self.execute(order)
            except Exception as e:
                logger.debug("%s failed on %r: %s", self.name, order, e)
                self.orders.close()
                self.errors.put(e)
                # Keeps `awake` balanced, returns immediately as we closed.
                self.orders.pop()
                return
            order.insert_into.extend(found)
            for child in found:
                operation = work_type(child.kind, self.fetch_keys)
                if operation is OpKind.NONE:
                    continue
                self.orders.push(
                    WorkOrder(child.children, child.name, operation))
            order, done = self.orders.pop()
        logger.debug("%s finished", self.name)
        self.errors.put(None)

    def execute(self, order):
        if order.operation is OpKind.LIST:
            return self.list(order.path)
        if order.operation is OpKind.GET:
            return self.get(order.path)
        if order.operation is OpKind.LIST_AND_GET:
            return self.get(order.path) + self.list(order.path)
        if order.operation is OpKind.MOUNTS:
            return self.mounts()
        return []

    def list(self, path):
        base = path.rstrip("/")
        try:
            entries = self.client.list(base + "/")
        except NotFound:
            # An empty mount, or removed since it was discovered.
            return []
        result = []
        for entry in entries:
            if not entry:
                # A secret stored at the mount point itself.
                continue
            kind = NodeKind.DIR if entry.endswith("/") else NodeKind.SECRET
            result.append(Tree(base + "/" + entry, kind))
        return result

    def get(self, path):
        base = path.rstrip("/")
        try:
            secret = self.client.read(base)
        except NotFound:
            return []
        return [
            Tree(base + ":" + key, NodeKind.KEY, value)
            for key, value in secret.items()
        ]

    def mounts(self):
        mounts = list(self.client.mounts("kv"))
        mounts.extend(self.client.mounts("generic"))
        return [Tree(m.rstrip("/") + "/", NodeKind.DIR) for m in mounts]


class TreeBuilder(object):
    """Build the tree below one path with a pool of `TreeWorker` threads.

    After `build()` failed, `tree` holds whatever was discovered so far.

    """

    queue_factory = WorkQueue
    worker_factory = TreeWorker

    def __init__(self, client, fetch_keys=False, workers=None):
        if workers is None:
            workers = default_workers()
        if workers < 1:
            raise ValueError(
                "At least one worker is needed, got {}".format(workers))
        self.client = client
        self.fetch_keys = fetch_keys
        self.workers = workers
        self.tree = None
        self.queue = None

    def classify(self, path):
        if path == "/":
            return NodeKind.ROOT
        try:
            self.client.read(path)
        except NotFound:
            return NodeKind.DIR
        try:
            self.client.list(path)
        except NotFound:
            return NodeKind.SECRET
        return NodeKind.DIR_AND_SECRET

    def build(self, path):
        path = canonicalize(path) or "/"
        self.tree = root = Tree(path, self.classify(path))
        if root.kind in (NodeKind.DIR, NodeKind.DIR_AND_SECRET):
            root.name = root.name.rstrip("/") + "/"

        self.queue = self.queue_factory(self.workers)
        self.queue.push(WorkOrder(
            root.children, root.name, work_type(root.kind, self.fetch_keys)))

        errors = queue.Queue(self.workers)
        threads = [
            self.worker_factory(
                self.client, self.queue, errors, self.fetch_keys,
                name="tree-worker-{}".format(i))
            for i in range(self.workers)
        ]
        for thread in threads:
            thread.start()

        error = None
        for _ in threads:
            result = errors.get()
            if error is None:
                error = result
        for thread in threads:
            thread.join()

        if error is not None:
            raise error
        return root


def build_tree(client, path, fetch_keys=False, workers=None):
    """Return the `Tree` below `path` as seen through `client`.

    `client` needs `read(path)`, `list(path)` and `mounts(kind)`; the first
    two raise :class:`safe.NotFound` when there is nothing at `path`.

    """
    return TreeBuilder(client, fetch_keys, workers).build(path)
