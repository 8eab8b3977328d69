"""
Tests for the Editor Session.

Tests cover:
- Screen/image coordinate round trips
- Resolution-independent stroke storage
- Viewport resize and zoom not touching strokes
- Per-zone mask rasterization and composite
- Erase strokes and zone exclusion
- Rasterization failures excluding a single zone
- Malformed pointer samples
- Locking while a pipeline step is in flight
"""

import math

import pytest

from ZR_Libs.errors import EditorLockedError, MaskRasterizationError
from ZR_Libs.ImageEditingLib.mask_compositor import is_mask_empty
from ZR_Libs.MaskEditingLib import mask_rasterizer
from ZR_Libs.MaskEditingLib.editor_session import EditorSession
from ZR_Libs.MaskEditingLib.mask_models import StrokeTool, ViewTransform


def _draw(session, points, color="red", tool=StrokeTool.PAINT):
    session.set_active_color(color)
    session.set_tool(tool)
    session.pointer_down(*points[0])
    for point in points[1:]:
        session.pointer_move(*point)
    session.pointer_up()


def _center(session):
    return session.viewport_size[0] / 2.0, session.viewport_size[1] / 2.0


class TestViewTransform:
    """Test the screen/image mapping."""

    def test_fit_centers_and_pads(self):
        """Test fit scale and centering for a small image."""
        transform = ViewTransform.fit((120, 80), (800, 600))
        assert transform.scale == pytest.approx(0.95)
        assert transform.offset_x == pytest.approx((800 - 120 * 0.95) / 2)
        assert transform.offset_y == pytest.approx((600 - 80 * 0.95) / 2)

    def test_fit_downscales_large_image(self):
        """Test that a large image is fitted by its limiting side."""
        transform = ViewTransform.fit((2000, 1000), (800, 600))
        assert transform.scale == pytest.approx(0.4 * 0.95)

    @pytest.mark.parametrize("scale,offset", [(0.38, (12.5, -40.0)), (1.0, (0.0, 0.0)), (2.7, (-300.0, 75.25))])
    def test_round_trip_within_one_pixel(self, scale, offset):
        """Test that image -> screen -> image stays within 1 pixel."""
        transform = ViewTransform(scale=scale, offset_x=offset[0], offset_y=offset[1])
        for point in [(0.0, 0.0), (17.3, 999.9), (1999.0, 0.5), (640.25, 480.75)]:
            screen = transform.image_to_screen(*point)
            back = transform.screen_to_image(*screen)
            assert math.dist(point, back) <= 1.0

    def test_invalid_scale(self):
        """Test that a non-positive scale is rejected."""
        with pytest.raises(ValueError):
            ViewTransform(scale=0)


class TestStrokeCapture:
    """Test turning pointer samples into image-space strokes."""

    def test_stroke_stored_in_image_space(self, photo):
        """Test that stored points are image coordinates."""
        with EditorSession(viewport_size=(800, 600)) as session:
            session.load_photo(photo)
            screen_point = session.image_to_screen(60, 40)
            _draw(session, [screen_point])

            stroke = session.strokes[0]
            assert stroke.points[0] == pytest.approx((60, 40))

    def test_brush_width_divided_by_scale(self, large_photo):
        """Test that a brush of b screen pixels is stored as b / scale image pixels."""
        with EditorSession(viewport_size=(800, 600), brush_size=40) as session:
            session.load_photo(large_photo)
            scale = session.transform.scale
            _draw(session, [_center(session), (410, 300)])

            assert session.strokes[0].width == pytest.approx(40 / scale)

    def test_zoom_does_not_change_existing_strokes(self, large_photo):
        """Test resolution invariance after a later zoom."""
        with EditorSession(viewport_size=(800, 600), brush_size=40) as session:
            session.load_photo(large_photo)
            _draw(session, [_center(session), (420, 310)])
            before_stroke = session.strokes[0]
            before_mask = session.masks["red"].tobytes()

            session.zoom(2)
            assert session.strokes[0] == before_stroke
            assert session.masks["red"].tobytes() == before_mask

            _draw(session, [_center(session)])
            assert session.strokes[1].width == pytest.approx(40 / session.transform.scale)
            assert session.strokes[1].width != pytest.approx(before_stroke.width)

    def test_resize_refits_without_touching_strokes(self, photo):
        """Test that a viewport resize only changes the transform."""
        with EditorSession(viewport_size=(800, 600)) as session:
            session.load_photo(photo)
            _draw(session, [_center(session), (410, 305)])
            strokes = session.strokes
            old_transform = session.transform

            session.set_viewport(300, 200)

            assert session.strokes == strokes
            assert session.transform != old_transform

    def test_degenerate_viewport_ignored(self, photo):
        """Test that a zero-size viewport keeps the current fit."""
        with EditorSession() as session:
            session.load_photo(photo)
            transform = session.transform
            session.set_viewport(0, 600)
            assert session.transform == transform

    def test_zoom_clamped(self, photo):
        """Test that zoom stays within its limits."""
        with EditorSession() as session:
            session.load_photo(photo)
            session.zoom(100)
            assert session.transform.scale == pytest.approx(3.0)
            session.zoom(-100)
            assert session.transform.scale == pytest.approx(0.1)

    def test_malformed_samples_dropped(self, photo):
        """Test that NaN and non-numeric samples are ignored."""
        with EditorSession() as session:
            session.load_photo(photo)
            session.pointer_down(*_center(session))
            session.pointer_move(float("nan"), 10)
            session.pointer_move("left", 10)
            session.pointer_move(None, None)
            session.pointer_move(float("inf"), 3)
            session.pointer_up()

            assert len(session.strokes) == 1
            assert len(session.strokes[0].points) == 1

    def test_malformed_pointer_down_starts_nothing(self, photo):
        """Test that a bad pointer-down does not start a stroke."""
        with EditorSession() as session:
            session.load_photo(photo)
            session.pointer_down(float("nan"), 1)
            session.pointer_move(*_center(session))
            session.pointer_up()
            assert session.strokes == ()

    def test_input_without_photo_ignored(self):
        """Test that strokes need a photo."""
        with EditorSession() as session:
            _draw(session, [(10, 10), (20, 20)])
            assert session.strokes == ()

    def test_pan_tool_moves_view(self, photo):
        """Test that dragging with the pan tool pans instead of drawing."""
        with EditorSession() as session:
            session.load_photo(photo)
            before = session.transform
            _draw(session, [(100, 100), (130, 90)], tool=StrokeTool.PAN)

            assert session.strokes == ()
            assert session.transform.offset_x == pytest.approx(before.offset_x + 30)
            assert session.transform.offset_y == pytest.approx(before.offset_y - 10)


class TestZoneMasks:
    """Test mask rasterization and zone export."""

    def test_masks_at_photo_resolution(self, large_photo):
        """Test that masks use the full photo size, not the display size."""
        with EditorSession() as session:
            session.load_photo(large_photo)
            _draw(session, [_center(session)])

            assert large_photo.display.size != large_photo.size
            assert session.masks["red"].size == large_photo.size
            assert session.masks["red"].mode == "L"
            assert session.composite_mask.size == large_photo.size

    def test_paint_marks_circle(self, photo):
        """Test that a dot paints a disc of the brush radius."""
        with EditorSession(brush_size=19) as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(60, 40)])
            mask = session.masks["red"]
            radius = session.strokes[0].radius

            assert mask.getpixel((60, 40)) == 255
            assert mask.getpixel((int(60 + radius - 2), 40)) == 255
            assert mask.getpixel((int(60 + radius + 3), 40)) == 0

    def test_one_mask_per_color(self, photo):
        """Test that colors never share a mask."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)], color="red")
            _draw(session, [session.image_to_screen(100, 60)], color="blue")

            masks = session.masks
            assert set(masks) == {"red", "blue"}
            assert masks["red"].getpixel((100, 60)) == 0
            assert masks["blue"].getpixel((20, 20)) == 0
            assert session.composite_mask.getpixel((20, 20)) == 255
            assert session.composite_mask.getpixel((100, 60)) == 255

    def test_erase_over_paint_excludes_zone(self, photo):
        """Test that a fully erased zone is not exported."""
        with EditorSession(brush_size=20) as session:
            session.load_photo(photo)
            path = [session.image_to_screen(30, 40), session.image_to_screen(60, 40)]
            _draw(session, path, color="red")
            session.set_brush_size(60)
            _draw(session, path, color="red", tool=StrokeTool.ERASE)
            session.set_instruction("red", "remove the lamp")

            assert is_mask_empty(session.masks["red"])
            assert session.export_zones() == []

    def test_erase_only_affects_its_zone(self, photo):
        """Test that erasing with one color leaves other zones alone."""
        with EditorSession(brush_size=20) as session:
            session.load_photo(photo)
            point = session.image_to_screen(60, 40)
            _draw(session, [point], color="red")
            _draw(session, [point], color="blue")
            session.set_brush_size(60)
            _draw(session, [point], color="blue", tool=StrokeTool.ERASE)

            assert session.masks["red"].getpixel((60, 40)) == 255
            assert session.masks["blue"].getpixel((60, 40)) == 0

    def test_export_requires_instruction(self, photo):
        """Test that zones without an instruction are left out."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)], color="red")
            _draw(session, [session.image_to_screen(100, 60)], color="blue")
            session.set_instruction("blue", "close the blinds")
            session.set_instruction("red", "   ")

            zones = session.export_zones()
            assert [zone.color for zone in zones] == ["blue"]
            assert zones[0].instruction == "close the blinds"

    def test_export_is_a_snapshot(self, photo):
        """Test that later strokes do not change exported masks."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)])
            session.set_instruction("red", "remove the lamp")
            zone = session.export_zones()[0]
            before = zone.mask.tobytes()

            _draw(session, [session.image_to_screen(100, 60)])
            assert zone.mask.tobytes() == before

    def test_export_order_follows_first_stroke(self, photo):
        """Test that zones come out in the order they were first drawn."""
        with EditorSession() as session:
            session.load_photo(photo)
            for color, point in (("green", (10, 10)), ("red", (50, 50)), ("green", (90, 20))):
                _draw(session, [session.image_to_screen(*point)], color=color)
            session.set_instruction("red", "a")
            session.set_instruction("green", "b")

            assert [zone.color for zone in session.export_zones()] == ["green", "red"]

    def test_rasterization_failure_excludes_only_that_zone(self, photo, monkeypatch):
        """Test that a failing zone is excluded while others survive."""
        original = mask_rasterizer.rasterize_zone_mask

        def flaky(color, strokes, size):
            if color == "blue":
                raise MaskRasterizationError(color, "out of memory")
            return original(color, strokes, size)

        monkeypatch.setattr(mask_rasterizer, "rasterize_zone_mask", flaky)

        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)], color="red")
            _draw(session, [session.image_to_screen(100, 60)], color="blue")
            session.set_instruction("red", "remove the lamp")
            session.set_instruction("blue", "close the blinds")

            assert "blue" in session.excluded_zones
            assert [zone.color for zone in session.export_zones()] == ["red"]

    def test_undo_and_clear(self, photo):
        """Test stroke undo and clear keep instructions."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)])
            _draw(session, [session.image_to_screen(100, 60)])
            session.set_instruction("red", "remove the lamp")

            session.undo_last_stroke()
            assert len(session.strokes) == 1
            session.clear()
            assert session.strokes == ()
            assert session.masks == {}
            assert session.instruction_for("red") == "remove the lamp"

    def test_masks_listener_called(self, photo):
        """Test that listeners see every rebuild."""
        seen = []
        with EditorSession() as session:
            session.add_masks_listener(lambda masks, composite: seen.append(set(masks)))
            session.load_photo(photo)
            _draw(session, [session.image_to_screen(20, 20)])

        assert seen[-1] == {"red"}

    def test_unknown_color_rejected(self):
        """Test that only palette colors are accepted."""
        with EditorSession() as session:
            with pytest.raises(ValueError):
                session.set_active_color("magenta")


class TestSessionLifecycle:
    """Test locking, reset and close."""

    def test_locked_session_refuses_edits(self, photo):
        """Test that zone edits raise while locked and pointer input is ignored."""
        with EditorSession() as session:
            session.load_photo(photo)
            session.lock()

            _draw(session, [_center(session)])
            assert session.strokes == ()
            with pytest.raises(EditorLockedError):
                session.set_instruction("red", "x")
            with pytest.raises(EditorLockedError):
                session.clear()

            session.unlock()
            session.set_instruction("red", "x")
            assert session.instruction_for("red") == "x"

    def test_reset_drops_everything(self, photo):
        """Test that reset clears the photo, zones and lock."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [_center(session)])
            session.set_instruction("red", "x")
            session.lock()

            session.reset()

            assert not session.locked
            assert session.photo is None
            assert session.strokes == ()
            assert session.instruction_for("red") == ""
            assert session.composite_mask is None

    def test_change_image_clears_strokes(self, photo, large_photo):
        """Test that switching photos clears strokes and instructions."""
        with EditorSession() as session:
            session.load_photo(photo)
            _draw(session, [_center(session)])
            session.set_instruction("red", "x")

            session.change_image(large_photo)
            assert session.strokes == ()
            assert session.instruction_for("red") == ""

    def test_closed_session_unusable(self, photo):
        """Test that a closed session refuses use."""
        session = EditorSession()
        session.load_photo(photo)
        session.close()
        assert session.closed
        with pytest.raises(RuntimeError):
            session.load_photo(photo)
