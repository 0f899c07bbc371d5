from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas
from reportlab.lib.units import inch
import os

out_path = os.path.join(os.path.dirname(__file__), "..", "data", "raw", "synthetic_check_stub.pdf")
os.makedirs(os.path.dirname(out_path), exist_ok=True)


c = canvas.Canvas(out_path, pagesize=LETTER)
w, h = LETTER

c.setFont("Helvetica-Bold", 14)
c.drawString(1*inch, h-1*inch, "MACHIAS BAY SEAFOOD")
c.setFont("Helvetica", 11)
c.drawString(1*inch, h-1.3*inch, "PO Box 12, Machias ME 04654")
c.drawString(1*inch, h-1.7*inch, "Check Date: 01/15/2024")
c.drawString(1*inch, h-1.95*inch, "Pay to: J. Harvester")
c.drawString(1*inch, h-2.4*inch, "Description")
c.drawString(1*inch, h-2.65*inch, "Softshell clams, Area 62")
c.drawString(1*inch, h-2.9*inch, "43.5")
c.drawString(1*inch, h-3.3*inch, "Price/lb 3.50")
c.drawString(1*inch, h-3.7*inch, "CHECK AMOUNT $152.25")

c.showPage()
c.save()
print(f"Created {out_path}")
