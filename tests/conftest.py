import sys
from pathlib import Path

# swimtext is a top-level module at the repository root, not an installed package
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

SESSION_WARMUP = """300 Cr EZ
3*100 spé r : 10''
#50 Éduc
#50 V1
6*50 jbes spé r : 10''

x2 (4*200 Cr V0 W relachement r : 20'' + r : 1'00) mat. AC

x3
100 jbes spé
3*50 Éduc
1*50 NC
#25 VAcc
#25 D2B

4*100 r : 20''
#1 : NAC V0
#2 : spé V2

400 spé plaq Éduc W d'appuis
+ 200 EZ

Total : 4400m"""

SESSION_DEPARTURES = """300 EZ AC CP
6*50 jbes spé W couléée, R2N @ 60''
3*100 Éduc spé r : 15''

12*100 spé V3 @ 1'45
+ 3*400
#1 : EZ AC NC
#2 : Cr V0 tuba plaq 1/2 pull ou palmes
#3 : 8*50 @ 60''
    #1-3 : jbes spé V1 @ 60''
    #4 : 15 spé Vmax DP / 35 EZ

300 Éduc / NC spé

x3
8*50 spé V3 (1° DP) @ 55''
+ 100 D2B @ 3'00

8*100 Cr / D pull ou palmes r : 15''
#1 : NC V0
#2-3 : jbes V1
#4-8 : NC V0"""
