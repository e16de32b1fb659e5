"""
OpenGL viewport rendering the selection engine's toolpath buffers.
"""
from PySide6.QtOpenGLWidgets import QOpenGLWidget
from PySide6.QtCore import Qt, QPoint, Signal
from OpenGL.GL import *
from OpenGL.GLU import *

from core.toolpath import RAPID

# Mouse travel (pixels) still treated as a click rather than a drag
CLICK_TOLERANCE = 5


class Viewport(QOpenGLWidget):
    """3D view of the toolpath with orbit, pan, zoom and click picking."""

    # World-space ray (origin, direction) under a click
    rayClicked = Signal(tuple, tuple)

    def __init__(self, engine, parent=None):
        super().__init__(parent)
        self.engine = engine

        # Camera controls
        self.center = (0.0, 0.0, 0.0)
        self.fit_distance = 30.0
        self.zoom = -30.0
        self.x_rot = -60.0
        self.z_rot = -30.0
        self.pan_x = 0.0
        self.pan_y = 0.0
        self.last_pos = QPoint()
        self.press_pos = None

        # Display settings
        self.show_rapid = True
        self.show_grid = True
        self.show_axes = True

        self._modelview = None
        self._projection = None
        self._viewport = None

    @property
    def zoom_factor(self):
        """1.0 at the fitted framing, larger when zoomed in."""
        return self.fit_distance / max(abs(self.zoom), 1e-6)

    def reset_view(self):
        """Frame the whole toolpath."""
        center, size = self.engine.framing()
        self.center = center
        self.fit_distance = max(size * 1.5, 1.0)
        self.zoom = -self.fit_distance
        self.x_rot = -60.0
        self.z_rot = -30.0
        self.pan_x = 0.0
        self.pan_y = 0.0
        self._apply_projection()
        self.update()

    def initializeGL(self):
        """Setup OpenGL context."""
        glEnable(GL_DEPTH_TEST)
        glEnable(GL_LINE_SMOOTH)
        glEnable(GL_BLEND)
        glBlendFunc(GL_SRC_ALPHA, GL_ONE_MINUS_SRC_ALPHA)

    def resizeGL(self, w, h):
        glViewport(0, 0, w, h)
        self._apply_projection(w, h)

    def _apply_projection(self, w=None, h=None):
        if w is None:
            ratio = self.devicePixelRatioF()
            w, h = int(self.width() * ratio), int(self.height() * ratio)
        if not self.isValid():
            return
        self.makeCurrent()
        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        far = max(1000.0, self.fit_distance * 20.0)
        gluPerspective(45, w / h if h > 0 else 1, far / 100000.0, far)
        self.doneCurrent()

    def paintGL(self):
        """Main render loop."""
        palette = self.engine.palette()
        glClearColor(*palette["background"], 1.0)
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)
        glMatrixMode(GL_MODELVIEW)
        glLoadIdentity()

        glTranslatef(self.pan_x, self.pan_y, self.zoom)
        glRotatef(self.x_rot, 1, 0, 0)
        glRotatef(self.z_rot, 0, 0, 1)
        glTranslatef(-self.center[0], -self.center[1], -self.center[2])

        # Kept for unprojecting clicks
        self._modelview = glGetDoublev(GL_MODELVIEW_MATRIX)
        self._projection = glGetDoublev(GL_PROJECTION_MATRIX)
        self._viewport = glGetIntegerv(GL_VIEWPORT)

        if self.show_grid:
            self.draw_grid()
        if self.show_axes:
            self.draw_axes()
        self.draw_toolpath()
        self.draw_markers(palette)

    def draw_grid(self):
        """Reference grid on the XY plane, scaled to the toolpath."""
        extent = max(50.0, self.fit_distance)
        step = extent / 10.0
        glLineWidth(1.0)
        glColor3f(0.3, 0.3, 0.3)
        glBegin(GL_LINES)
        for i in range(-10, 11):
            offset = i * step
            glVertex3f(offset, -extent, 0)
            glVertex3f(offset, extent, 0)
            glVertex3f(-extent, offset, 0)
            glVertex3f(extent, offset, 0)
        glEnd()

    def draw_axes(self):
        length = max(15.0, self.fit_distance / 5.0)
        glLineWidth(3.0)
        glBegin(GL_LINES)
        glColor3f(1.0, 0.0, 0.0)
        glVertex3f(0, 0, 0)
        glVertex3f(length, 0, 0)
        glColor3f(0.0, 1.0, 0.0)
        glVertex3f(0, 0, 0)
        glVertex3f(0, length, 0)
        glColor3f(0.0, 0.0, 1.0)
        glVertex3f(0, 0, 0)
        glVertex3f(0, 0, length)
        glEnd()

    def draw_toolpath(self):
        """Feed moves solid, rapids dashed, colored by the engine's selection."""
        commands = self.engine.segment_commands
        glLineWidth(2.5)
        self._draw_segments([i for i, c in enumerate(commands) if c != RAPID])
        if self.show_rapid:
            glLineWidth(2.0)
            glLineStipple(1, 0xAAAA)
            glEnable(GL_LINE_STIPPLE)
            self._draw_segments([i for i, c in enumerate(commands) if c == RAPID])
            glDisable(GL_LINE_STIPPLE)

    def _draw_segments(self, indices):
        positions = self.engine.positions
        colors = self.engine.colors
        if not indices or len(colors) != len(positions):
            return
        glBegin(GL_LINES)
        for index in indices:
            base = index * 6
            glColor3f(colors[base], colors[base + 1], colors[base + 2])
            glVertex3f(positions[base], positions[base + 1], positions[base + 2])
            glColor3f(colors[base + 3], colors[base + 4], colors[base + 5])
            glVertex3f(positions[base + 3], positions[base + 4], positions[base + 5])
        glEnd()

    def draw_markers(self, palette):
        """Start and end of the current selection."""
        markers = self.engine.markers()
        if markers is None:
            return
        start, end = markers
        glDisable(GL_DEPTH_TEST)
        glPointSize(8.0)
        glBegin(GL_POINTS)
        glColor3f(*palette["feed"])
        glVertex3f(*start)
        glColor3f(*palette["rapid"])
        glVertex3f(*end)
        glEnd()
        glEnable(GL_DEPTH_TEST)

    def ray_at(self, pos):
        """World-space ray through widget position ``pos``, or None before the first paint."""
        if self._modelview is None:
            return None
        ratio = self.devicePixelRatioF()
        x = pos.x() * ratio
        y = self._viewport[3] - pos.y() * ratio
        near = gluUnProject(x, y, 0.0, self._modelview, self._projection, self._viewport)
        far = gluUnProject(x, y, 1.0, self._modelview, self._projection, self._viewport)
        direction = tuple(b - a for a, b in zip(near, far))
        return tuple(near), direction

    def mousePressEvent(self, event):
        self.last_pos = event.pos()
        self.press_pos = event.pos()

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.LeftButton and self.press_pos is not None:
            moved = (event.pos() - self.press_pos).manhattanLength()
            if moved <= CLICK_TOLERANCE:
                ray = self.ray_at(event.pos())
                if ray is not None:
                    self.rayClicked.emit(*ray)
        self.press_pos = None

    def mouseMoveEvent(self, event):
        """Left drag orbits, right drag pans."""
        dx = event.pos().x() - self.last_pos.x()
        dy = event.pos().y() - self.last_pos.y()

        if event.buttons() & Qt.LeftButton:
            self.x_rot += dy * 0.5
            self.z_rot += dx * 0.5
        elif event.buttons() & Qt.RightButton:
            scale = abs(self.zoom) / max(self.height(), 1)
            self.pan_x += dx * scale
            self.pan_y -= dy * scale

        self.last_pos = event.pos()
        self.update()

    def wheelEvent(self, event):
        steps = event.angleDelta().y() / 120.0
        self.zoom *= 0.9 ** steps
        self.update()

    def toggle_display_option(self, option):
        if option == 'rapid':
            self.show_rapid = not self.show_rapid
        elif option == 'grid':
            self.show_grid = not self.show_grid
        elif option == 'axes':
            self.show_axes = not self.show_axes
        self.update()
