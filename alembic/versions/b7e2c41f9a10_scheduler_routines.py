"""scheduler routines

Installs the three plpgsql functions the engines call through
madrasa/repos/pg_routines.py.  InMemoryRoutines in
madrasa/repos/routines.py computes the same results in Python; change
both together.

Revision ID: b7e2c41f9a10
Revises: 3c9d2a7e5f11
Create Date: 2026-10-01 00:10:00.000000

"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7e2c41f9a10"
down_revision: str | Sequence[str] | None = "3c9d2a7e5f11"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

CALCULATE_USER_PERFORMANCE = """
CREATE OR REPLACE FUNCTION calculate_user_performance(p_user uuid, p_course uuid)
RETURNS jsonb
LANGUAGE plpgsql STABLE AS $$
DECLARE
    v_level integer;
    v_total integer;
    v_completed integer;
    v_on_time integer;
    v_avg_grade numeric;
    v_penalty numeric;
    v_completion numeric;
    v_timeliness numeric;
    v_overall numeric;
BEGIN
    SELECT level_number INTO v_level
      FROM enrollments
     WHERE user_id = p_user AND course_id = p_course;
    IF NOT FOUND THEN
        RETURN jsonb_build_object('error', 'enrollment not found');
    END IF;

    WITH released AS (
        SELECT t.id, t.status, t.due_date, t.max_score
          FROM tasks t
         WHERE t.course_id = p_course AND t.assigned_to = p_user AND t.is_active
    ), subs AS (
        SELECT DISTINCT ON (s.task_id) s.task_id, s.score, s.submitted_at
          FROM task_submissions s
          JOIN released r ON r.id = s.task_id
         WHERE s.user_id = p_user AND s.status = 'completed'
         ORDER BY s.task_id, s.submitted_at DESC
    ), done AS (
        SELECT r.*, s.task_id AS sub_task, s.score, s.submitted_at
          FROM released r
          LEFT JOIN subs s ON s.task_id = r.id
         WHERE r.status = 'completed' OR s.task_id IS NOT NULL
    )
    SELECT (SELECT count(*) FROM released),
           (SELECT count(*) FROM done),
           (SELECT count(*) FROM done
             WHERE due_date IS NULL
                OR (sub_task IS NOT NULL AND submitted_at <= due_date)),
           (SELECT avg(score / max_score * 100) FROM done
             WHERE score IS NOT NULL AND max_score > 0)
      INTO v_total, v_completed, v_on_time, v_avg_grade;

    SELECT coalesce(sum(penalty_percentage), 0) INTO v_penalty
      FROM task_penalties
     WHERE user_id = p_user AND course_id = p_course;

    v_completion := CASE WHEN v_total > 0
                         THEN round(v_completed::numeric / v_total * 100, 2) ELSE 0 END;
    v_timeliness := CASE WHEN v_completed > 0
                         THEN round(v_on_time::numeric / v_completed * 100, 2) ELSE 0 END;
    v_avg_grade := round(coalesce(v_avg_grade, 0), 2);
    v_overall := round(greatest(0, 0.4 * v_completion + 0.4 * v_avg_grade
                                   + 0.2 * v_timeliness - v_penalty), 2);

    RETURN jsonb_build_object(
        'level_number', v_level,
        'total_tasks', v_total,
        'completed_tasks', v_completed,
        'task_completion_rate', v_completion,
        'average_grade', v_avg_grade,
        'on_time_completion_rate', v_timeliness,
        'penalty_total', v_penalty,
        'overall_score', v_overall
    );
END;
$$;
"""

TIER_REACHED = """
CREATE OR REPLACE FUNCTION scheduler_tier_reached(p_course uuid, p_config jsonb, p_tier text)
RETURNS boolean
LANGUAGE sql STABLE AS $$
    WITH thresholds AS (
        SELECT substring(key FROM 7)::integer AS level,
               coalesce((value ->> p_tier)::integer, 0) AS needed
          FROM jsonb_each(p_config)
         WHERE key LIKE 'level\\_%' AND jsonb_typeof(value) = 'object'
    ), required AS (
        SELECT level, needed FROM thresholds WHERE needed > 0
    ), counts AS (
        SELECT level_number AS level, count(*) AS n
          FROM enrollments
         WHERE course_id = p_course AND status IN ('active', 'waiting_start')
         GROUP BY level_number
    )
    SELECT EXISTS (SELECT 1 FROM required)
       AND NOT EXISTS (
            SELECT 1 FROM required r
              LEFT JOIN counts c ON c.level = r.level
             WHERE coalesce(c.n, 0) < r.needed
       );
$$;
"""

CHECK_AUTO_LAUNCH_CONDITIONS = """
CREATE OR REPLACE FUNCTION check_auto_launch_conditions(p_course uuid, p_today date)
RETURNS boolean
LANGUAGE plpgsql STABLE AS $$
DECLARE
    c courses%ROWTYPE;
    v_settings jsonb;
BEGIN
    SELECT * INTO c FROM courses WHERE id = p_course;
    IF NOT FOUND OR NOT c.is_published OR c.is_launched OR c.status <> 'published' THEN
        RETURN false;
    END IF;
    IF c.start_date IS NULL OR c.start_date < p_today
       OR c.participant_config IS NULL OR c.participant_config = '{}'::jsonb THEN
        RETURN false;
    END IF;

    v_settings := coalesce(c.auto_launch_settings, '{}'::jsonb);

    IF coalesce((v_settings ->> 'auto_launch_on_max_capacity')::boolean, false)
       AND scheduler_tier_reached(p_course, c.participant_config, 'max') THEN
        RETURN true;
    END IF;

    IF c.start_date - p_today <= 1 THEN
        IF coalesce((v_settings ->> 'auto_launch_on_optimal_capacity')::boolean, false)
           AND scheduler_tier_reached(p_course, c.participant_config, 'optimal') THEN
            RETURN true;
        END IF;
        IF coalesce((v_settings ->> 'auto_launch_on_min_capacity')::boolean, false)
           AND scheduler_tier_reached(p_course, c.participant_config, 'min') THEN
            RETURN true;
        END IF;
    END IF;
    RETURN false;
END;
$$;
"""

GENERATE_DAILY_TASKS_FOR_COURSE = """
CREATE OR REPLACE FUNCTION generate_daily_tasks_for_course(p_course uuid, p_tz text)
RETURNS integer
LANGUAGE plpgsql AS $$
DECLARE
    v_created integer;
BEGIN
    INSERT INTO tasks (
        id, course_id, assigned_to, task_type, title, is_active, status,
        due_date, schedule_id, template_id, level_number, max_score
    )
    SELECT gen_random_uuid(),
           p_course,
           e.user_id,
           tpl.task_type,
           replace(replace(tpl.title, '{day}', s.day_number::text),
                   '{week}', ((s.day_number - 1) / 7 + 1)::text),
           false,
           'pending',
           ((coalesce(s.scheduled_date, c.start_date + (s.day_number - 1))
             + coalesce(s.meeting_end_time, time '00:00')) AT TIME ZONE p_tz)
             + make_interval(hours => tpl.due_hours),
           s.id,
           tpl.id,
           tpl.level_number,
           tpl.max_score
      FROM courses c
      JOIN course_schedule s ON s.course_id = c.id
      JOIN course_task_templates tpl ON tpl.course_id = c.id
      JOIN enrollments e ON e.course_id = c.id
                        AND e.status = 'active'
                        AND e.level_number = tpl.level_number
     WHERE c.id = p_course
       AND coalesce(s.scheduled_date, c.start_date + (s.day_number - 1)) IS NOT NULL
       AND (tpl.frequency <> 'weekly' OR s.day_number = 1 OR s.day_number % 7 = 0)
    ON CONFLICT ON CONSTRAINT uq_tasks_template_day_user DO NOTHING;

    GET DIAGNOSTICS v_created = ROW_COUNT;
    RETURN v_created;
END;
$$;
"""


def upgrade() -> None:
    op.execute(CALCULATE_USER_PERFORMANCE)
    op.execute(TIER_REACHED)
    op.execute(CHECK_AUTO_LAUNCH_CONDITIONS)
    op.execute(GENERATE_DAILY_TASKS_FOR_COURSE)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS generate_daily_tasks_for_course(uuid, text)")
    op.execute("DROP FUNCTION IF EXISTS check_auto_launch_conditions(uuid, date)")
    op.execute("DROP FUNCTION IF EXISTS scheduler_tier_reached(uuid, jsonb, text)")
    op.execute("DROP FUNCTION IF EXISTS calculate_user_performance(uuid, uuid)")
