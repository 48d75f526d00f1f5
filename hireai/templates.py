"""
Server-rendered pages: the proctored exam page and a plain error page.

The exam page's script runs the same session machine as
``hireai.proctoring``: camera first, a 30 minute countdown, focus loss
debounced over 2 seconds (first a warning, then disqualification), a webcam
snapshot 2 seconds after start and every 30 seconds into a ring of 30, and a
single POST to /api/submissions.
"""
import html

from hireai import config


def error_html(title: str, message: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{html.escape(title)}</title></head>
<body style="font-family:sans-serif;background:#0c0c0e;color:#e4e4e7;display:flex;align-items:center;justify-content:center;min-height:100vh;">
  <div style="text-align:center;">
    <h1>{html.escape(title)}</h1>
    <p style="color:#a1a1aa;">{html.escape(message)}</p>
  </div>
</body>
</html>"""


def exam_html(job_id: str, title: str, questions_json: str, num_questions: int) -> str:
    duration = config.ASSESSMENT_DURATION_SECONDS
    width, height = config.SNAPSHOT_SIZE
    # questions_json is embedded in a <script> block
    questions_json = questions_json.replace("</", "<\\/")
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{html.escape(title)} - HireAI Assessment</title>
<style>
  * {{ margin:0; padding:0; box-sizing:border-box; }}
  :root {{
    --bg: #0c0c0e; --surface: #18181b; --surface2: #1f1f23; --border: #27272a;
    --text: #e4e4e7; --text2: #a1a1aa; --text3: #71717a; --gold: #d4a847; --rose: #f43f5e;
  }}
  body {{ font-family:'Inter',sans-serif; background:var(--bg); color:var(--text); min-height:100vh; }}
  .header {{ background:var(--surface); border-bottom:1px solid var(--border); padding:0 1.5rem; height:64px; display:flex; align-items:center; justify-content:space-between; position:sticky; top:0; z-index:100; }}
  .timer {{ font-family:monospace; font-size:1.5rem; font-weight:700; color:var(--gold); }}
  .timer.warning {{ color:var(--rose); }}
  .container {{ max-width:800px; margin:0 auto; padding:2rem 1.5rem; }}
  .step {{ display:none; }}
  .step.active {{ display:block; }}
  .card {{ background:var(--surface); border:1px solid var(--border); border-radius:1.25rem; padding:2rem; margin-bottom:1rem; }}
  .form-input, .text-answer {{ width:100%; padding:.875rem 1rem; background:var(--surface2); border:1.5px solid var(--border); border-radius:.75rem; color:var(--text); font-size:1rem; font-family:inherit; margin-bottom:1rem; }}
  .text-answer {{ min-height:160px; resize:vertical; }}
  .text-answer.code {{ font-family:monospace; }}
  .btn {{ padding:.875rem 2rem; border:none; border-radius:.75rem; font-size:1rem; font-weight:700; cursor:pointer; background:var(--gold); color:#0c0c0e; }}
  .btn:disabled {{ opacity:.5; cursor:not-allowed; }}
  .option {{ display:block; padding:1rem 1.25rem; border:1.5px solid var(--border); border-radius:.875rem; background:var(--surface2); cursor:pointer; margin-bottom:.5rem; }}
  .option.selected {{ border-color:var(--gold); }}
  .q-meta {{ font-size:.8rem; color:var(--text3); text-transform:uppercase; margin-bottom:.5rem; }}
  .q-text {{ font-size:1.2rem; font-weight:600; margin-bottom:1rem; white-space:pre-wrap; }}
  .tab-warning {{ position:fixed; top:0; left:0; right:0; background:var(--rose); color:white; text-align:center; padding:.75rem; font-weight:700; z-index:999; display:none; }}
  .tab-warning.show {{ display:block; }}
  .error {{ color:var(--rose); font-size:.875rem; margin-bottom:1rem; }}
  #preview {{ position:fixed; bottom:1rem; right:1rem; width:160px; border-radius:.5rem; border:1px solid var(--border); }}
  .hidden {{ display:none !important; }}
</style>
</head>
<body>
  <div id="tabWarning" class="tab-warning"></div>

  <header class="header">
    <strong>HireAI</strong>
    <div id="timer" class="timer hidden">--:--</div>
  </header>

  <div class="container">
    <!-- STEP 1: Candidate details and camera -->
    <div id="step1" class="step active">
      <div class="card">
        <h2>{html.escape(title)}</h2>
        <p style="color:var(--text2);margin:1rem 0;">{num_questions} questions, {duration // 60} minutes. Your webcam stays on for the whole assessment.
        Leaving this tab or window once gives a warning; a second time ends the assessment.</p>
        <input type="text" id="candName" class="form-input" placeholder="Full name" autocomplete="name">
        <input type="email" id="candEmail" class="form-input" placeholder="you@email.com" autocomplete="email">
        <div id="startError" class="error hidden"></div>
        <button id="startBtn" class="btn" onclick="startAssessment()">Start Assessment</button>
      </div>
    </div>

    <!-- STEP 2: Questions -->
    <div id="step2" class="step">
      <div id="questions"></div>
      <div id="submitError" class="error hidden"></div>
      <button id="submitBtn" class="btn" onclick="manualSubmit()">Submit Assessment</button>
    </div>

    <!-- STEP 3: Done -->
    <div id="step3" class="step">
      <div class="card" style="text-align:center;">
        <h2 id="doneTitle">Assessment Submitted</h2>
        <p id="doneText" style="color:var(--text2);margin-top:1rem;"></p>
        <button id="retryBtn" class="btn hidden" style="margin-top:1rem;" onclick="retrySubmit()">Try Again</button>
      </div>
    </div>
  </div>

  <video id="preview" class="hidden" autoplay muted playsinline></video>
  <canvas id="snapCanvas" width="{width}" height="{height}" class="hidden"></canvas>

<script>
const JOB_ID = "{job_id}";
const DURATION = {duration};
const QUESTIONS = {questions_json};
const DEBOUNCE_MS = {int(config.VIOLATION_DEBOUNCE_SECONDS * 1000)};
const MAX_SNAPSHOTS = {config.MAX_SNAPSHOTS};
const WARMUP_MS = {int(config.SNAPSHOT_WARMUP_SECONDS * 1000)};
const SNAPSHOT_MS = {int(config.SNAPSHOT_INTERVAL_SECONDS * 1000)};
const SNAPSHOT_QUALITY = {config.SNAPSHOT_QUALITY / 100};

// ── State ──
let status = 'idle';          // idle | in_progress | submitted | disqualified
let answers = {{}};
let timeLeft = DURATION;
let violations = 0;
let lastViolation = 0;
let snapshots = [];
let startedAt = 0;
let submitting = false;
let lastPayload = null;
let sent = false;
let stream = null;
let timerInterval = null;
let snapshotInterval = null;
let warmupTimeout = null;

function showStep(n) {{
  for (let i = 1; i <= 3; i++) document.getElementById('step' + i).classList.remove('active');
  document.getElementById('step' + n).classList.add('active');
}}

function escapeHtml(s) {{
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}}

// ── Start ──
async function startAssessment() {{
  const err = document.getElementById('startError');
  const name = document.getElementById('candName').value.trim();
  const email = document.getElementById('candEmail').value.trim();
  if (!name || !email) {{
    err.textContent = 'Enter your name and email';
    err.classList.remove('hidden');
    return;
  }}
  try {{
    stream = await navigator.mediaDevices.getUserMedia({{ video: true, audio: false }});
  }} catch (e) {{
    err.textContent = 'Camera access required for this proctored assessment.';
    err.classList.remove('hidden');
    return;
  }}
  const video = document.getElementById('preview');
  video.srcObject = stream;
  video.classList.remove('hidden');

  status = 'in_progress';
  startedAt = Date.now();
  renderQuestions();
  showStep(2);
  document.getElementById('timer').classList.remove('hidden');
  updateTimer();
  timerInterval = setInterval(tick, 1000);
  warmupTimeout = setTimeout(() => {{
    captureSnapshot();
    snapshotInterval = setInterval(captureSnapshot, SNAPSHOT_MS);
  }}, WARMUP_MS);
  document.addEventListener('visibilitychange', () => {{ if (document.hidden) onFocusLost(); }});
  window.addEventListener('blur', onFocusLost);
  window.addEventListener('beforeunload', stopMonitoring);
}}

function renderQuestions() {{
  const box = document.getElementById('questions');
  box.innerHTML = QUESTIONS.map((q, i) => {{
    let body = '';
    if (q.type === 'mcq') {{
      body = (q.options || []).map(opt =>
        `<label class="option"><input type="radio" name="q_${{q.id}}" value="${{escapeHtml(opt)}}"> ${{escapeHtml(opt)}}</label>`
      ).join('');
    }} else {{
      body = `<textarea class="text-answer ${{q.type === 'coding' ? 'code' : ''}}" data-qid="${{q.id}}" placeholder="Type your answer here..."></textarea>`;
    }}
    return `<div class="card">
      <div class="q-meta">Question ${{i + 1}} · ${{escapeHtml(q.type)}} · ${{escapeHtml(q.skill || '')}}</div>
      <div class="q-text">${{escapeHtml(q.question)}}</div>
      ${{body}}
    </div>`;
  }}).join('');

  box.querySelectorAll('input[type=radio]').forEach(el => {{
    el.addEventListener('change', () => {{
      if (status !== 'in_progress' || submitting) return;
      answers[el.name.slice(2)] = el.value;
    }});
  }});
  box.querySelectorAll('textarea').forEach(el => {{
    el.addEventListener('input', () => {{
      if (status !== 'in_progress' || submitting) return;
      answers[el.dataset.qid] = el.value;
    }});
  }});
}}

// ── Timer ──
function tick() {{
  if (status !== 'in_progress' || submitting) return;
  timeLeft = Math.max(0, timeLeft - 1);
  updateTimer();
  if (timeLeft === 0) beginSubmit(false);
}}

function updateTimer() {{
  const m = Math.floor(timeLeft / 60);
  const s = timeLeft % 60;
  const el = document.getElementById('timer');
  el.textContent = String(m).padStart(2, '0') + ':' + String(s).padStart(2, '0');
  if (timeLeft <= 300) el.classList.add('warning');
}}

// ── Integrity ──
function onFocusLost() {{
  if (status !== 'in_progress' || submitting) return;
  const now = Date.now();
  if (lastViolation && now - lastViolation < DEBOUNCE_MS) return;
  lastViolation = now;
  violations++;

  const warning = document.getElementById('tabWarning');
  if (violations === 1) {{
    warning.textContent = 'Warning: leaving the assessment again will disqualify you.';
    warning.classList.add('show');
    setTimeout(() => warning.classList.remove('show'), 4000);
    return;
  }}
  warning.textContent = 'You left the assessment again and have been disqualified.';
  warning.classList.add('show');
  beginSubmit(true);
}}

function captureSnapshot() {{
  if (status !== 'in_progress' || submitting) return;
  const video = document.getElementById('preview');
  if (!video.videoWidth) return;
  try {{
    const canvas = document.getElementById('snapCanvas');
    canvas.getContext('2d').drawImage(video, 0, 0, canvas.width, canvas.height);
    snapshots.push(canvas.toDataURL('image/jpeg', SNAPSHOT_QUALITY));
    if (snapshots.length > MAX_SNAPSHOTS) snapshots.shift();
  }} catch (e) {{
    // skipped
  }}
}}

function stopMonitoring() {{
  clearInterval(timerInterval);
  clearInterval(snapshotInterval);
  clearTimeout(warmupTimeout);
  if (stream) {{
    stream.getTracks().forEach(t => t.stop());
    stream = null;
  }}
  document.getElementById('preview').classList.add('hidden');
}}

// ── Submit ──
function manualSubmit() {{
  beginSubmit(false);
}}

function beginSubmit(disqualified) {{
  if (status !== 'in_progress' || submitting) return;
  submitting = true;
  status = disqualified ? 'disqualified' : 'submitted';
  stopMonitoring();
  document.getElementById('submitBtn').disabled = true;
  lastPayload = {{
    candidate_name: document.getElementById('candName').value.trim(),
    candidate_email: document.getElementById('candEmail').value.trim(),
    job_id: JOB_ID,
    answers: answers,
    time_taken_seconds: Math.round((Date.now() - startedAt) / 1000),
    disqualified: disqualified,
    snapshots: snapshots.slice(-MAX_SNAPSHOTS),
  }};
  transmit();
}}

async function transmit() {{
  const title = document.getElementById('doneTitle');
  const text = document.getElementById('doneText');
  const retry = document.getElementById('retryBtn');
  retry.classList.add('hidden');
  showStep(3);
  title.textContent = status === 'disqualified' ? 'Assessment Ended' : 'Submitting...';
  text.textContent = 'Please wait, do not close this tab.';

  try {{
    const resp = await fetch('/api/submissions', {{
      method: 'POST',
      headers: {{ 'Content-Type': 'application/json' }},
      body: JSON.stringify(lastPayload),
    }});
    const data = await resp.json();
    if (!resp.ok) throw new Error(data.detail || 'Submission failed');
    sent = true;
    title.textContent = status === 'disqualified' ? 'Assessment Ended' : 'Assessment Submitted';
    text.textContent = status === 'disqualified'
      ? 'You were disqualified for leaving the assessment.'
      : 'Your score: ' + data.total_score + '%';
  }} catch (e) {{
    title.textContent = 'Submission failed';
    text.textContent = (e.message || 'Network error') + '.';
    // Disqualifications are never resent
    if (status === 'submitted') retry.classList.remove('hidden');
  }} finally {{
    submitting = false;
  }}
}}

function retrySubmit() {{
  if (status !== 'submitted' || submitting || sent || !lastPayload) return;
  submitting = true;
  transmit();
}}
</script>
</body>
</html>"""
